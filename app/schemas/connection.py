from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field


class ConnectionCreate(BaseModel):
    to: int


class ConnectionUpdate(BaseModel):
    status: Literal["pending", "connected"]


class ConnectionUserRead(BaseModel):
    id: int
    username: str
    name: str
    title: str | None = None
    avatar_url: str | None = None

    model_config = {"from_attributes": True}


class ConnectionRead(BaseModel):
    id: int
    status: Literal["pending", "connected"]
    from_user: ConnectionUserRead = Field(alias="from")
    to_user: ConnectionUserRead = Field(alias="to")
    created_at: datetime
    connected_at: datetime | None = None

    model_config = {"populate_by_name": True}
