"""
Domain models for launcher sessions, players and presence notifications.

Sessions and players are frozen: a mutation builds a new instance and the
owning component swaps it in, so any instance a reader holds is a
consistent snapshot.
"""
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

ANONYMOUS_USERNAME = "Anonymous"
HIDDEN_SERVER = "Hidden Server"

# status and version are replaced by a patch, never cleared
_NEVER_CLEARED = ("status", "minecraft_version")


class SessionStatus(str, Enum):
    """Recognized session statuses. Other text is stored as given."""
    ONLINE = "online"
    PLAYING = "playing"
    IDLE = "idle"


class EventKind(str, Enum):
    """Notifications pushed to presence observers"""
    INITIAL = "initial"
    PLAYER_CONNECTED = "player_connected"
    PLAYER_UPDATED = "player_updated"
    PLAYER_DISCONNECTED = "player_disconnected"
    CLEANUP = "cleanup"


class PrivacySettings(BaseModel):
    """Which session fields a client agrees to publish.

    Every flag is true unless the client explicitly sends ``false``.
    """
    model_config = ConfigDict(
        frozen=True, populate_by_name=True, alias_generator=to_camel
    )

    show_username: bool = True
    show_version: bool = True
    show_world: bool = True
    show_server: bool = True

    @field_validator(
        "show_username", "show_version", "show_world", "show_server",
        mode="before",
    )
    @classmethod
    def only_false_hides(cls, v: Any) -> bool:
        return v is not False


class Session(BaseModel):
    """One connected launcher instance."""
    model_config = ConfigDict(frozen=True)

    session_id: str
    player_ref: str
    display_name: str
    status: str = SessionStatus.ONLINE.value
    minecraft_version: Optional[str] = None
    world_name: Optional[str] = None
    server_address: Optional[str] = None
    game_mode: Optional[str] = "idle"
    privacy: PrivacySettings = Field(default_factory=PrivacySettings)
    connected_at: datetime
    last_update: datetime

    def age(self, now: datetime) -> float:
        """Seconds since the last update."""
        return (now - self.last_update).total_seconds()

    def duration(self, now: datetime) -> int:
        """Whole seconds since the session connected, never negative."""
        return max(0, int((now - self.connected_at).total_seconds()))


class Player(BaseModel):
    """Lifetime record of a player identity."""
    model_config = ConfigDict(frozen=True)

    player_id: str
    identity_key: str
    username: str
    launcher_version: Optional[str] = None
    total_playtime: int = 0
    first_seen: datetime
    last_seen: datetime


class SessionPatch(BaseModel):
    """Sparse update of a session's descriptive fields.

    Only fields present in the payload are applied. An empty patch is a
    heartbeat.
    """
    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)

    status: Optional[str] = None
    minecraft_version: Optional[str] = None
    world_name: Optional[str] = None
    server_address: Optional[str] = None
    game_mode: Optional[str] = None

    def changes(self) -> Dict[str, Any]:
        updates = {}
        for field in self.model_fields_set:
            value = getattr(self, field)
            if field in _NEVER_CLEARED and not value:
                continue
            updates[field] = value
        return updates


class PresenceView(BaseModel):
    """Privacy-filtered, client-visible projection of a session."""
    model_config = ConfigDict(frozen=True)

    session_id: str
    username: str
    status: str
    minecraft_version: Optional[str] = None
    world_name: Optional[str] = None
    server_address: Optional[str] = None
    game_mode: Optional[str] = None
    connected_at: datetime
    session_duration: int
    privacy_show_username: bool
    privacy_show_version: bool
    privacy_show_world: bool
    privacy_show_server: bool


class Notification(BaseModel):
    """One broadcast, built once and shared by every observer."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    kind: EventKind = Field(serialization_alias="type")
    sessions: Tuple[PresenceView, ...] = Field(serialization_alias="players")
    count: int

    @classmethod
    def build(cls, kind: EventKind, views) -> "Notification":
        sessions = tuple(views)
        return cls(kind=kind, sessions=sessions, count=len(sessions))

    def to_message(self) -> str:
        return self.model_dump_json(by_alias=True)
