import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import (
    APIRouter,
    Depends,
    HTTPException,
    WebSocket,
    WebSocketDisconnect,
)
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from starlette.requests import HTTPConnection
from starlette.status import (
    HTTP_400_BAD_REQUEST,
    HTTP_404_NOT_FOUND,
    HTTP_503_SERVICE_UNAVAILABLE,
)

from ..core.exceptions import NotFoundError, StorageError, ValidationError
from ..core.fanout import Observer
from ..core.models import PresenceView, PrivacySettings, SessionPatch
from ..core.presence_manager import PresenceManager

# Create routers
router = APIRouter(tags=["presence"])
root_router = APIRouter(tags=["health"])

logger = logging.getLogger(__name__)

# Define models for requests and responses


class CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)


class ConnectRequest(CamelModel):
    """Model for player connect requests"""

    username: Optional[str] = None
    uuid: Optional[str] = None
    launcher_version: Optional[str] = None
    privacy: Optional[PrivacySettings] = None


class ConnectResponse(CamelModel):
    success: bool = True
    session_id: str


class SessionRequest(CamelModel):
    """Model for requests naming a single session"""

    session_id: Optional[str] = None


class StatusRequest(SessionPatch):
    """Model for status updates: a session id plus a sparse patch"""

    session_id: Optional[str] = None

    def patch(self) -> SessionPatch:
        fields = self.model_fields_set - {"session_id"}
        return SessionPatch.model_validate(
            self.model_dump(include=fields)
        )


class SuccessResponse(BaseModel):
    success: bool = True


class DisconnectResponse(SuccessResponse):
    duration: int


class OnlinePlayersResponse(BaseModel):
    success: bool = True
    players: List[PresenceView]
    count: int


class VersionCount(BaseModel):
    version: str
    count: int


class StatsResponse(CamelModel):
    success: bool = True
    statistics: Dict[str, int]
    popular_versions: List[VersionCount]


class ErrorResponse(BaseModel):
    """Model for error responses"""

    detail: str


# Dependency to get the PresenceManager instance
def get_presence_manager(connection: HTTPConnection) -> PresenceManager:
    """Get the PresenceManager instance from the app state"""
    presence_manager = getattr(connection.app.state, "presence_manager", None)
    if presence_manager is None:
        raise HTTPException(
            status_code=HTTP_503_SERVICE_UNAVAILABLE,
            detail="Presence service not initialized"
        )
    return presence_manager


def _require_session_id(session_id: Optional[str]) -> str:
    if not session_id:
        raise HTTPException(
            status_code=HTTP_400_BAD_REQUEST,
            detail="Session ID is required"
        )
    return session_id


def _not_found(e: NotFoundError) -> HTTPException:
    return HTTPException(status_code=HTTP_404_NOT_FOUND, detail=str(e))


def _storage_unavailable(e: StorageError) -> HTTPException:
    logger.error(f"Storage failure: {e}")
    return HTTPException(
        status_code=HTTP_503_SERVICE_UNAVAILABLE,
        detail="Storage unavailable"
    )


ERROR_RESPONSES: Dict[int, Dict[str, Any]] = {
    400: {"model": ErrorResponse, "description": "Bad request"},
    404: {"model": ErrorResponse, "description": "Session not found"},
    503: {"model": ErrorResponse, "description": "Storage unavailable"},
}


# Routes
@router.post(
    "/player/connect",
    response_model=ConnectResponse,
    response_model_by_alias=True,
    responses=ERROR_RESPONSES,
)
async def connect_player(
    request: ConnectRequest,
    presence_manager: PresenceManager = Depends(get_presence_manager),
):
    """
    Start a launcher session

    Returns:
    - **ConnectResponse**: the new session id
    """
    try:
        session_id = await presence_manager.connect(
            request.username or "",
            identity_hint=request.uuid,
            privacy=request.privacy,
            launcher_version=request.launcher_version,
        )
    except ValidationError as e:
        raise HTTPException(status_code=HTTP_400_BAD_REQUEST, detail=str(e))
    except StorageError as e:
        raise _storage_unavailable(e)

    return ConnectResponse(session_id=session_id)


@router.post(
    "/player/status",
    response_model=SuccessResponse,
    responses=ERROR_RESPONSES,
)
async def update_player_status(
    request: StatusRequest,
    presence_manager: PresenceManager = Depends(get_presence_manager),
):
    """
    Update what a launcher session is doing

    Only the fields present in the body change. A 404 means the session
    expired; the launcher should connect again.
    """
    session_id = _require_session_id(request.session_id)
    try:
        await presence_manager.update_status(session_id, request.patch())
    except NotFoundError as e:
        raise _not_found(e)

    return SuccessResponse()


@router.post(
    "/player/heartbeat",
    response_model=SuccessResponse,
    responses=ERROR_RESPONSES,
)
async def heartbeat(
    request: SessionRequest,
    presence_manager: PresenceManager = Depends(get_presence_manager),
):
    """Keep a session alive"""
    session_id = _require_session_id(request.session_id)
    try:
        await presence_manager.heartbeat(session_id)
    except NotFoundError as e:
        raise _not_found(e)

    return SuccessResponse()


@router.post(
    "/player/disconnect",
    response_model=DisconnectResponse,
    responses=ERROR_RESPONSES,
)
async def disconnect_player(
    request: SessionRequest,
    presence_manager: PresenceManager = Depends(get_presence_manager),
):
    """End a launcher session and credit its playtime"""
    session_id = _require_session_id(request.session_id)
    try:
        duration = await presence_manager.disconnect(session_id)
    except NotFoundError as e:
        raise _not_found(e)
    except StorageError as e:
        raise _storage_unavailable(e)

    return DisconnectResponse(duration=duration)


@router.get("/players/online", response_model=OnlinePlayersResponse)
async def online_players(
    presence_manager: PresenceManager = Depends(get_presence_manager),
):
    """Privacy-filtered list of live sessions"""
    players = presence_manager.list_live()
    return OnlinePlayersResponse(players=players, count=len(players))


@router.get(
    "/stats",
    response_model=StatsResponse,
    response_model_by_alias=True,
)
async def stats(
    presence_manager: PresenceManager = Depends(get_presence_manager),
):
    """Lifetime statistics and the most used game versions"""
    return StatsResponse(
        statistics=presence_manager.statistics(),
        popular_versions=[
            VersionCount(**entry)
            for entry in presence_manager.popular_versions()
        ],
    )


@root_router.get("/health")
async def health_check(
    presence_manager: PresenceManager = Depends(get_presence_manager),
):
    """Health check endpoint."""
    database_ok = await presence_manager.check_connection_health()
    return {
        "status": "ok" if database_ok else "degraded",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "uptime": presence_manager.uptime,
        "websockets": presence_manager.observer_count,
        "database": "online" if database_ok else "offline",
    }


async def _pump(websocket: WebSocket, observer: Observer) -> None:
    """Forward queued notifications to the socket until the observer closes."""
    async for message in observer.messages():
        await websocket.send_text(message)


@root_router.websocket("/ws")
async def presence_websocket(
    websocket: WebSocket,
    presence_manager: PresenceManager = Depends(get_presence_manager),
):
    """
    WebSocket stream of presence notifications

    The first message is the ``initial`` state, followed by every broadcast.
    Observers that fall behind are disconnected.
    """
    await websocket.accept()
    observer = presence_manager.register_observer()
    sender = asyncio.create_task(_pump(websocket, observer))
    receiver = asyncio.create_task(websocket.receive_text())

    try:
        while True:
            done, _ = await asyncio.wait(
                {sender, receiver}, return_when=asyncio.FIRST_COMPLETED
            )
            if sender in done:
                if observer.closed:
                    # evicted or shutting down
                    await websocket.close(code=1013)
                sender.result()
                break
            # client messages carry nothing; keep reading to notice closes
            receiver.result()
            receiver = asyncio.create_task(websocket.receive_text())
    except WebSocketDisconnect:
        logger.info(f"WebSocket observer {observer.observer_id} disconnected")
    except Exception as e:
        logger.error(f"Error in presence websocket: {e}")
    finally:
        presence_manager.unregister_observer(observer)
        sender.cancel()
        receiver.cancel()
