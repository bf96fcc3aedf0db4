from datetime import datetime

from pydantic import BaseModel, Field


class UserRead(BaseModel):
    id: int
    sub: str
    username: str
    name: str
    title: str | None = None
    avatar_url: str | None = None
    bio: str | None = None
    location: str | None = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class UserUpsert(BaseModel):
    sub: str | None = None
    name: str = Field(min_length=1, max_length=255)
    username: str | None = Field(
        default=None, min_length=1, max_length=100, pattern="^[a-z0-9-]+$"
    )
    title: str | None = None
    avatar_url: str | None = None
    bio: str | None = None
    location: str | None = None
