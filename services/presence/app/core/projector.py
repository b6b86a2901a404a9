"""
Presence projection: what observers are allowed to see of each session.
"""
from datetime import datetime
from typing import Iterable, List

from .models import ANONYMOUS_USERNAME, HIDDEN_SERVER, PresenceView, Session


def project_session(session: Session, now: datetime) -> PresenceView:
    """Apply the session's own privacy flags to its fields."""
    privacy = session.privacy

    if privacy.show_server:
        server_address = session.server_address
    elif session.server_address is not None:
        server_address = HIDDEN_SERVER
    else:
        server_address = None

    return PresenceView(
        session_id=session.session_id,
        username=(
            session.display_name if privacy.show_username
            else ANONYMOUS_USERNAME
        ),
        status=session.status,
        minecraft_version=(
            session.minecraft_version if privacy.show_version else None
        ),
        world_name=session.world_name if privacy.show_world else None,
        server_address=server_address,
        game_mode=session.game_mode,
        connected_at=session.connected_at,
        session_duration=session.duration(now),
        privacy_show_username=privacy.show_username,
        privacy_show_version=privacy.show_version,
        privacy_show_world=privacy.show_world,
        privacy_show_server=privacy.show_server,
    )


def project(sessions: Iterable[Session], now: datetime) -> List[PresenceView]:
    """Project a snapshot of sessions, most recently connected first.

    Equal connection times are ordered by session id so the result is
    deterministic.
    """
    ordered = sorted(sessions, key=lambda s: s.session_id)
    ordered.sort(key=lambda s: s.connected_at, reverse=True)
    return [project_session(session, now) for session in ordered]
