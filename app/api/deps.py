from __future__ import annotations

from starlette.requests import HTTPConnection

from app.state import AppState


def get_app_state(conn: HTTPConnection) -> AppState:
    state = getattr(conn.app.state, "sync", None)
    if state is None:
        raise RuntimeError("AppState not initialized. It is built in the app lifespan.")
    return state
