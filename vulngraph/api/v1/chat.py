"""Chat endpoint: answer questions about the findings graph with the chat analysis agent."""

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException

from vulngraph.core.config import get_settings
from vulngraph.core.graph_store import GraphStore, get_graph_store
from vulngraph.schemas.chat import ChatAgentResult, ChatRequest
from vulngraph.services.chat_agent import run_chat_agent

router = APIRouter()


@router.post("", response_model=ChatAgentResult)
async def post_chat(
    body: ChatRequest,
    store: Annotated[GraphStore, Depends(get_graph_store)],
) -> ChatAgentResult:
    """
    Retrieve, rank, and summarize findings relevant to the question.

    Store or LLM failures do not fail the request; they appear as failed entries in
    `steps` and the answer falls back to a template built from whatever was retrieved.
    """
    question = body.message.strip()
    if not question:
        raise HTTPException(
            status_code=422,
            detail="Message body missing. Provide a 'message' string.",
        )
    return await run_chat_agent(
        question,
        store=store,
        settings=get_settings(),
        model=body.model,
        limit=body.limit,
    )
