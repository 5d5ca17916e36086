# discord_schemas.py

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class User(BaseModel):
    id: str | None = None
    username: str | None = None
    global_name: str | None = None
    bot: bool = False


class Member(BaseModel):
    user: User | None = None
    nick: str | None = None
    roles: list[str] = Field(default_factory=list)


class InteractionData(BaseModel):
    id: str | None = None
    name: str | None = None
    type: int | None = None
    options: list[dict[str, Any]] | None = None


class Interaction(BaseModel):
    id: str
    type: int
    token: str
    application_id: str
    data: InteractionData | None = None
    guild_id: str | None = None
    channel_id: str | None = None
    member: Member | None = None
    # Present instead of member for invocations in DMs
    user: User | None = None


class MessageEvent(BaseModel):
    """MESSAGE_CREATE payload as forwarded by the gateway relay."""

    id: str
    channel_id: str
    guild_id: str | None = None
    author: User
    # Absent for DMs; roles are only included for guild messages
    member: Member | None = None
    content: str = ""


class MessageUpdateEvent(MessageEvent):
    """MESSAGE_UPDATE payload; an edited command is dispatched again."""

    timestamp: datetime | None = None
    edited_timestamp: datetime | None = None
