"""
Route registration for the interrupt stream API.

Responsibilities:
- Define HTTP control endpoints
- Translate requests into session operations
- Pull dependencies from app.state
"""

from __future__ import annotations

from typing import Any

from fastapi import FastAPI, HTTPException, Request
from pydantic import BaseModel

from session.mind_session import MindSession


class PromptRequest(BaseModel):
    prompt: str


class InterruptRequest(BaseModel):
    reason: str
    type: str = "UserInput"


def _session(request: Request) -> MindSession:
    return request.app.state.session


def register_routes(app: FastAPI) -> None:
    """Register all routes on the FastAPI app."""
    @app.get("/health")
    async def health() -> dict[str, str]: # pyright: ignore[reportUnusedFunction]
        return {"status": "ok"}

    @app.get("/state")
    async def state(request: Request) -> dict[str, Any]: # pyright: ignore[reportUnusedFunction]
        return _session(request).snapshot()

    @app.get("/generators")
    async def generators(request: Request) -> dict[str, Any]: # pyright: ignore[reportUnusedFunction]
        return await _session(request).generators_summary()

    @app.post("/prompt", status_code=202)
    async def prompt(body: PromptRequest, request: Request) -> dict[str, Any]: # pyright: ignore[reportUnusedFunction]
        if not body.prompt.strip():
            raise HTTPException(status_code=422, detail="prompt must not be empty")

        session = _session(request)
        await session.start_prompt(body.prompt)
        return {"state": session.stream.controller.state.value}

    @app.post("/interrupts", status_code=202)
    async def interrupts(body: InterruptRequest, request: Request) -> dict[str, Any]: # pyright: ignore[reportUnusedFunction]
        if not body.reason.strip():
            raise HTTPException(status_code=422, detail="reason must not be empty")

        interrupt, outcome = await _session(request).submit_interrupt(body.reason, body.type)
        return {
            "outcome": outcome.value,
            "interrupt": interrupt.to_dict(),
        }
