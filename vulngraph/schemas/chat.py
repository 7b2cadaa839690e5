"""Pydantic schemas for the chat analysis endpoint."""

from pydantic import BaseModel, Field

from vulngraph.schemas.agent import AgentExecutedStep


class ChatAgentFinding(BaseModel):
    id: str
    title: str | None = None
    severity: str | None = None
    service: str | None = None
    timestamp: str | None = None


class ChatAgentInsight(BaseModel):
    title: str
    detail: str
    citations: list[str] = Field(default_factory=list)


class ChatRequest(BaseModel):
    """Request body for POST /api/v1/chat."""

    message: str = Field(..., description="Question about the findings graph.")
    model: str | None = Field(default=None, description="Override for CHAT_AGENT_MODEL.")
    limit: int | None = Field(default=None, ge=1, le=50)


class ChatAgentResult(BaseModel):
    answer: str
    citations: list[str] = Field(default_factory=list)
    findings: list[ChatAgentFinding] = Field(default_factory=list)
    insights: list[ChatAgentInsight] = Field(default_factory=list)
    steps: list[AgentExecutedStep] = Field(default_factory=list)
