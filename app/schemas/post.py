from datetime import datetime

from pydantic import BaseModel, Field

from app.schemas.connection import ConnectionUserRead


class PostCreate(BaseModel):
    content: str = Field(min_length=1)
    image_url: str | None = None


class PostRead(BaseModel):
    id: int
    author: ConnectionUserRead
    content: str
    image_url: str | None = None
    created_at: datetime
    likes: int
    comments: int
    is_liked: bool = False


class CommentCreate(BaseModel):
    content: str = Field(min_length=1)


class CommentRead(BaseModel):
    id: int
    post_id: int
    author: ConnectionUserRead
    content: str
    created_at: datetime

    model_config = {"from_attributes": True}


class LikeCount(BaseModel):
    likes: int
