"""Agent runtime: ordered execution, reducer folding, abort vs continue on failure."""

import asyncio
import unittest

from vulngraph.services.agent_runtime import (
    AgentPlanStep,
    AgentTool,
    AgentToolCall,
    AgentToolResult,
    execute_agent,
)


def _append_reducer(state: list, step) -> list:
    return [*state, step.data]


def _tool(name: str, value: object = None, error: Exception | None = None) -> AgentTool:
    async def run(call: AgentToolCall) -> AgentToolResult:
        if error is not None:
            raise error
        return AgentToolResult(summary=f"{name} ok", data=value)

    return AgentTool(name=name, description=f"{name} tool", run=run)


class TestExecuteAgent(unittest.TestCase):
    def test_steps_run_in_order_and_fold(self) -> None:
        run = asyncio.run(
            execute_agent(
                label="demo",
                tools=[_tool("a", 1), _tool("b", 2)],
                plan=[AgentPlanStep(tool="a"), AgentPlanStep(tool="b")],
                initial_result=[],
                reducer=_append_reducer,
            )
        )
        self.assertEqual(run.result, [1, 2])
        self.assertFalse(run.aborted)
        self.assertEqual([s.id for s in run.steps], ["demo-1", "demo-2"])
        self.assertEqual([s.output for s in run.steps], ["a ok", "b ok"])
        self.assertTrue(all(s.started_at and s.finished_at for s in run.steps))

    def test_failure_aborts_by_default(self) -> None:
        run = asyncio.run(
            execute_agent(
                label="demo",
                tools=[_tool("a", 1), _tool("boom", error=RuntimeError("kaput")), _tool("c", 3)],
                plan=[AgentPlanStep(tool="a"), AgentPlanStep(tool="boom"), AgentPlanStep(tool="c")],
                initial_result=[],
                reducer=_append_reducer,
            )
        )
        self.assertTrue(run.aborted)
        self.assertEqual(run.result, [1])
        self.assertEqual(len(run.steps), 2)
        self.assertEqual(run.steps[1].error, "kaput")
        self.assertIsNone(run.steps[1].output)

    def test_continue_on_error_skips_reducer_and_keeps_going(self) -> None:
        run = asyncio.run(
            execute_agent(
                label="demo",
                tools=[_tool("boom", error=ValueError("bad")), _tool("c", 3)],
                plan=[
                    AgentPlanStep(tool="boom", continue_on_error=True),
                    AgentPlanStep(tool="c"),
                ],
                initial_result=[],
                reducer=_append_reducer,
            )
        )
        self.assertFalse(run.aborted)
        self.assertEqual(run.result, [3])
        self.assertEqual(len(run.steps), 2)
        self.assertTrue(run.steps[0].failed)

    def test_missing_tool_is_recorded_as_failure(self) -> None:
        run = asyncio.run(
            execute_agent(
                label="demo",
                tools=[],
                plan=[AgentPlanStep(tool="ghost")],
                initial_result=[],
                reducer=_append_reducer,
            )
        )
        self.assertTrue(run.aborted)
        self.assertEqual(run.steps[0].error, "Tool ghost not registered")

    def test_tools_see_input_context_and_current_state(self) -> None:
        seen: list[tuple] = []

        async def run_counter(call: AgentToolCall) -> AgentToolResult:
            seen.append((call.input, call.context["who"], list(call.state)))
            return AgentToolResult(summary="counter", data=len(seen))

        counter = AgentTool(name="counter", description="counter", run=run_counter)
        asyncio.run(
            execute_agent(
                label="ctx",
                tools=[counter],
                plan=[AgentPlanStep(tool="counter", input="x"), AgentPlanStep(tool="counter", input="y")],
                initial_result=[],
                reducer=_append_reducer,
                context={"who": "tester"},
            )
        )
        self.assertEqual(seen, [("x", "tester", []), ("y", "tester", [1])])
