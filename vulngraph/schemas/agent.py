"""Pydantic schemas for agent runtime step records."""

from typing import Any

from pydantic import BaseModel, Field


class AgentExecutedStep(BaseModel):
    """One executed plan step: either output + data, or error. Never both."""

    id: str = Field(..., description="Step id '<plan label>-<1-based index>'.")
    tool: str = Field(..., description="Name of the tool the step invoked.")
    description: str = Field(..., description="Tool description, or why the tool could not run.")
    input: Any = Field(default=None, description="Tool-specific input from the plan.")
    output: str | None = Field(default=None, description="Tool summary on success.")
    data: Any = Field(default=None, description="Tool data on success; folded into the result.")
    error: str | None = Field(default=None, description="Error message on failure.")
    started_at: str = Field(..., description="ISO-8601 start time (UTC).")
    finished_at: str = Field(..., description="ISO-8601 finish time (UTC).")
    duration_ms: float = Field(..., ge=0, description="Wall-clock duration in milliseconds.")

    @property
    def failed(self) -> bool:
        return self.error is not None
