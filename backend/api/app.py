"""
FastAPI application for the Agent Core
"""

import logging
from typing import Optional

from fastapi import FastAPI

from agents.agent_engine import AgentEngine
from infrastructure.errors import error_tracker, register_exception_handlers

from .agent_router import router as agent_router, set_engine

logger = logging.getLogger("AgentCoreAPI")


def create_app(engine: Optional[AgentEngine] = None) -> FastAPI:
    """Build the app; without an engine one is created from the environment on first request"""
    app = FastAPI(title="Celo Agent Core", version="0.1.0")

    if engine is not None:
        set_engine(engine)

    register_exception_handlers(app)
    app.include_router(agent_router)

    @app.get("/health")
    async def health():
        return {"status": "ok", "errors": error_tracker.get_stats()["total_errors"]}

    logger.info("🚀 Agent Core API ready")
    return app
