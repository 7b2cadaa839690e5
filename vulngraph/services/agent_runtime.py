"""Sequential agent runtime: run an ordered plan of named tools against shared state.

Steps execute strictly in order. A successful step is logged and folded into the
accumulated result by the caller's reducer; a failed step (missing tool or raised
exception) is logged with its error and never reaches the reducer. A failure on a
step with ``continue_on_error=False`` stops the plan and returns what has been
accumulated so far together with the full step log.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any, Generic, TypeVar

from vulngraph.schemas.agent import AgentExecutedStep

logger = logging.getLogger(__name__)

StateT = TypeVar("StateT")


@dataclass(frozen=True)
class AgentToolCall(Generic[StateT]):
    """What a tool receives: its plan input, the read-only context, and the current state."""

    input: Any
    context: Mapping[str, Any]
    state: StateT


@dataclass
class AgentToolResult:
    summary: str
    data: Any = None


@dataclass(frozen=True)
class AgentTool:
    name: str
    description: str
    run: Callable[[AgentToolCall[Any]], Awaitable[AgentToolResult]]


@dataclass(frozen=True)
class AgentPlanStep:
    tool: str
    input: Any = None
    continue_on_error: bool = False


@dataclass
class AgentRun(Generic[StateT]):
    result: StateT
    steps: list[AgentExecutedStep] = field(default_factory=list)
    aborted: bool = False


Reducer = Callable[[StateT, AgentExecutedStep], StateT]


def _iso(ts: datetime) -> str:
    return ts.isoformat().replace("+00:00", "Z")


def _error_message(exc: Exception) -> str:
    message = getattr(exc, "message", None) or str(exc)
    return message if message else type(exc).__name__


async def execute_agent(
    *,
    label: str,
    tools: list[AgentTool],
    plan: list[AgentPlanStep],
    initial_result: StateT,
    reducer: Reducer[StateT],
    context: Mapping[str, Any] | None = None,
) -> AgentRun[StateT]:
    """Execute ``plan`` left to right and return the accumulated result plus step log."""
    tool_map = {tool.name: tool for tool in tools}
    shared_context: Mapping[str, Any] = MappingProxyType(dict(context or {}))
    steps: list[AgentExecutedStep] = []
    state = initial_result

    for index, step in enumerate(plan):
        step_id = f"{label}-{index + 1}"
        started_at = datetime.now(timezone.utc)
        start = time.perf_counter()
        tool = tool_map.get(step.tool)

        if tool is None:
            executed = AgentExecutedStep(
                id=step_id,
                tool=step.tool,
                description=f"Missing tool {step.tool}",
                input=step.input,
                error=f"Tool {step.tool} not registered",
                started_at=_iso(started_at),
                finished_at=_iso(datetime.now(timezone.utc)),
                duration_ms=(time.perf_counter() - start) * 1000,
            )
        else:
            try:
                outcome = await tool.run(
                    AgentToolCall(input=step.input, context=shared_context, state=state)
                )
            except Exception as e:
                executed = AgentExecutedStep(
                    id=step_id,
                    tool=tool.name,
                    description=tool.description,
                    input=step.input,
                    error=_error_message(e),
                    started_at=_iso(started_at),
                    finished_at=_iso(datetime.now(timezone.utc)),
                    duration_ms=(time.perf_counter() - start) * 1000,
                )
            else:
                executed = AgentExecutedStep(
                    id=step_id,
                    tool=tool.name,
                    description=tool.description,
                    input=step.input,
                    output=outcome.summary,
                    data=outcome.data,
                    started_at=_iso(started_at),
                    finished_at=_iso(datetime.now(timezone.utc)),
                    duration_ms=(time.perf_counter() - start) * 1000,
                )

        steps.append(executed)

        if executed.failed:
            logger.warning(
                "Agent step %s (%s) failed: %s",
                step_id,
                executed.tool,
                executed.error,
            )
            if not step.continue_on_error:
                logger.warning("Agent plan %s aborted at step %s", label, step_id)
                return AgentRun(result=state, steps=steps, aborted=True)
            continue

        logger.info(
            "Agent step %s (%s) completed in %.1f ms: %s",
            step_id,
            executed.tool,
            executed.duration_ms,
            executed.output,
        )
        state = reducer(state, executed)

    return AgentRun(result=state, steps=steps)
