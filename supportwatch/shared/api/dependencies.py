"""
API Dependencies
================

FastAPI dependencies resolving the engine built during lifespan startup.
"""

from fastapi import HTTPException, Request, WebSocket, status

from supportwatch.engine import SupportEngine


def get_engine(request: Request) -> SupportEngine:
    engine = getattr(request.app.state, "engine", None)
    if engine is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Engine not initialized"
        )
    return engine


def get_ws_engine(websocket: WebSocket) -> SupportEngine:
    return websocket.app.state.engine
