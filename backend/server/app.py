"""
FastAPI app factory.

Responsibilities:
- Create and configure FastAPI app
- Set up middleware
- Initialize shared resources (model client, mind session)
- Register routes
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from adapters.llm.base import CompletionClient
from adapters.llm.openai_client import build_llm_client
from config import AppConfig
from observability.logger import LoggerFactory
from server.routes import register_routes
from session.mind_session import build_session


def create_app(
    config: AppConfig | None = None,
    client: CompletionClient | None = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    This is the app factory pattern that allows:
    - Testing with different configurations
    - Environment-specific setup
    - ASGI server compatibility
    """
    config = config or AppConfig.load_from_env()
    loggers = LoggerFactory(config)
    owns_client = client is None

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        # Create the model client ONCE per process
        model_client = client or build_llm_client(config, loggers.for_component("llm"))
        session = build_session(config, model_client, loggers=loggers)
        app.state.session = session

        await session.connect()
        try:
            yield
        finally:
            await session.disconnect()
            if owns_client:
                await model_client.aclose()

    app = FastAPI(title="Interrupt Stream API", lifespan=lifespan)

    app.state.config = config

    # Middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # tighten later
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Routes
    register_routes(app)

    return app
