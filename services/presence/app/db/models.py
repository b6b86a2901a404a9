from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
)

from services.shared.db.base import Base

# Text the launcher sends is stored unbounded; ids are generated here.


class PlayerRecord(Base):
    __tablename__ = "players"
    __table_args__ = (
        {
            "comment": (
                "Lifetime record of a player identity, "
                "accumulating playtime across sessions"
            )
        },
    )

    id = Column(String(32), primary_key=True)
    identity_key = Column(Text, nullable=False, unique=True)
    username = Column(Text, nullable=False)
    launcher_version = Column(Text, nullable=True)
    first_seen = Column(DateTime(timezone=True), nullable=False)
    last_seen = Column(DateTime(timezone=True), nullable=False)
    total_playtime = Column(Integer, nullable=False, server_default="0")


class SessionRecord(Base):
    __tablename__ = "sessions"
    __table_args__ = (
        Index("idx_sessions_last_update", "last_update"),
        {"comment": "Currently connected launcher sessions"},
    )

    session_id = Column(String(36), primary_key=True)
    player_id = Column(
        String(32),
        ForeignKey("players.id", ondelete="CASCADE"),
        nullable=False,
    )
    username = Column(Text, nullable=False)
    status = Column(Text, nullable=False, server_default="online")
    minecraft_version = Column(Text, nullable=True)
    world_name = Column(Text, nullable=True)
    server_address = Column(Text, nullable=True)
    game_mode = Column(Text, nullable=True, server_default="idle")
    connected_at = Column(DateTime(timezone=True), nullable=False)
    last_update = Column(DateTime(timezone=True), nullable=False)
    privacy_show_username = Column(Boolean, nullable=False, default=True)
    privacy_show_version = Column(Boolean, nullable=False, default=True)
    privacy_show_world = Column(Boolean, nullable=False, default=True)
    privacy_show_server = Column(Boolean, nullable=False, default=True)


class StatisticRecord(Base):
    __tablename__ = "statistics"

    metric = Column(String(64), primary_key=True)
    value = Column(Integer, nullable=False, server_default="0")
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
