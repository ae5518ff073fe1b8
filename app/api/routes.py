from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, status
from fastapi.responses import PlainTextResponse

from app.api.deps import get_app_state
from app.api.models import (
    CapeUpdateRequest,
    EmoteSnapshot,
    EmoteUpdateRequest,
    EmoteWriteResponse,
    OkResponse,
    PublicCapeRecord,
)
from app.core.errors import AuthError, ValidationError
from app.state import AppState

router = APIRouter()

NO_CACHE_HEADERS = {
    "Cache-Control": "no-cache, no-store, max-age=0",
    "Pragma": "no-cache",
}


def _parse_since_rev(raw: str | None) -> int:
    # Anything unparseable (including "") means "from the start". Negative values
    # are kept: they are behind every revision, including a fresh server at 0.
    if not raw:
        return 0
    try:
        return int(float(raw))
    except (TypeError, ValueError, OverflowError):
        return 0


def _until_disconnected(request: Request):
    async def _wait() -> None:
        while True:
            message = await request.receive()
            if message["type"] == "http.disconnect":
                return

    return _wait


@router.get("/", response_class=PlainTextResponse)
async def root() -> str:
    return "ok"


@router.get("/healthcheck")
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


# -------------------- emotes --------------------


@router.get("/emotes", response_model=EmoteSnapshot)
async def list_emotes_route(response: Response, state: AppState = Depends(get_app_state)) -> EmoteSnapshot:
    response.headers.update(NO_CACHE_HEADERS)
    return state.emotes.get_all()


@router.get("/emotes/changes", response_model=EmoteSnapshot)
async def emote_changes_route(
    request: Request,
    response: Response,
    since_rev: str | None = Query(None, alias="sinceRev"),
    timeout_ms: int | None = Query(None, alias="timeoutMs", ge=0),
    state: AppState = Depends(get_app_state),
) -> EmoteSnapshot | Response:
    """Long-poll for emote changes past `sinceRev`.

    Answers at once when the client is behind, otherwise holds the request until
    the next write or the timeout (which answers with the unchanged snapshot).
    """

    state.emotes.cleanup()

    timeout_s = state.settings.long_poll_timeout_s if timeout_ms is None else timeout_ms / 1000
    timeout_s = min(timeout_s, state.settings.long_poll_max_timeout_s)

    snapshot = await state.notifier.wait(
        _parse_since_rev(since_rev),
        timeout_s,
        until_disconnected=_until_disconnected(request),
    )
    if snapshot is None:
        # Client is gone; nothing will read this.
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    response.headers.update(NO_CACHE_HEADERS)
    return snapshot


@router.put("/emotes/{uuid}", response_model=EmoteWriteResponse)
async def put_emote_route(
    uuid: str,
    payload: EmoteUpdateRequest | None = None,
    state: AppState = Depends(get_app_state),
) -> EmoteWriteResponse:
    try:
        revision = state.emotes.write(uuid, payload or EmoteUpdateRequest())
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e

    return EmoteWriteResponse(revision=revision)


# -------------------- capes --------------------


@router.get("/capes", response_model=dict[str, PublicCapeRecord])
async def list_capes_route(state: AppState = Depends(get_app_state)) -> dict[str, PublicCapeRecord]:
    return {
        uuid: PublicCapeRecord.model_validate(record.model_dump(exclude={"client_key"}))
        for uuid, record in state.capes.get_all().items()
    }


@router.put("/capes/{uuid}", response_model=OkResponse)
async def put_cape_route(
    uuid: str,
    payload: CapeUpdateRequest | None = None,
    state: AppState = Depends(get_app_state),
) -> OkResponse:
    body = payload or CapeUpdateRequest()
    try:
        state.capes.write(uuid, body.client_key, body)
    except AuthError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e)) from e
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e

    return OkResponse()
