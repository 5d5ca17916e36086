# models.py

from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from Warden.db import Base


class Ban(Base):
    __tablename__ = "bans"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    # Snowflakes stored as text in this table
    user_id: Mapped[str] = mapped_column(Text)
    guild_id: Mapped[str] = mapped_column(Text)
    unbanned: Mapped[bool] = mapped_column(Boolean, default=False)
    # Naive UTC timestamps
    start_time: Mapped[datetime] = mapped_column(DateTime)
    end_time: Mapped[datetime] = mapped_column(DateTime)

    __table_args__ = (Index("ix_bans_unbanned_end_time", "unbanned", "end_time"),)


class UbMarker(Base):
    __tablename__ = "ub"
    # ISO-8601 UTC timestamp of the last report
    time: Mapped[str] = mapped_column(Text)
    channel: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    kind: Mapped[str] = mapped_column(Text, primary_key=True)

    __table_args__ = (
        UniqueConstraint("channel", "kind"),
        Index("ub_channel_kind_idx", "channel", "kind"),
    )


class GodboltTarget(Base):
    __tablename__ = "godbolt_targets"
    id: Mapped[str] = mapped_column(Text, primary_key=True)
    name: Mapped[str] = mapped_column(Text, primary_key=True)
    # Always "rust" today; kept so other languages can share the table
    lang: Mapped[str] = mapped_column(Text)
    compiler_type: Mapped[str] = mapped_column(Text)
    semver: Mapped[str] = mapped_column(Text)
    instruction_set: Mapped[str] = mapped_column(Text)


class LastGodboltUpdate(Base):
    __tablename__ = "last_godbolt_update"
    # Single-row table
    id: Mapped[int] = mapped_column(Integer, primary_key=True, default=0)
    # Unix timestamp (UTC seconds)
    last_update: Mapped[int] = mapped_column(Integer)

    __table_args__ = (CheckConstraint("id = 0", name="ck_last_godbolt_update_single_row"),)


class Tag(Base):
    __tablename__ = "tags"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    guild_id: Mapped[int] = mapped_column(BigInteger, index=True)
    key: Mapped[str] = mapped_column(String(100))
    value: Mapped[str] = mapped_column(Text)

    __table_args__ = (UniqueConstraint("guild_id", "key", name="uq_tags_guild_key"),)


class UserPrefix(Base):
    __tablename__ = "prefixes"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(BigInteger, index=True)
    string: Mapped[str] = mapped_column(String(64))

    __table_args__ = (UniqueConstraint("user_id", "string", name="uq_prefixes_user_string"),)
