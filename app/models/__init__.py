from app.models.user import User
from app.models.connection import Connection
from app.models.post import Post
from app.models.comment import Comment
from app.models.like import Like

__all__ = ["User", "Connection", "Post", "Comment", "Like"]
