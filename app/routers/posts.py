import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import delete, func, or_, select
from sqlalchemy.exc import IntegrityError

from app.dependencies import (
    CurrentUser,
    DbSession,
    Page,
    connected_user_ids,
    pagination,
)
from app.models.comment import Comment
from app.models.like import Like
from app.models.post import Post
from app.models.user import User
from app.schemas.connection import ConnectionUserRead
from app.schemas.post import (
    CommentCreate,
    CommentRead,
    LikeCount,
    PostCreate,
    PostRead,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/posts", tags=["posts"])


def _like_count(post_id: int, db) -> int:
    return db.execute(
        select(func.count(Like.id)).where(Like.post_id == post_id)
    ).scalar_one()


def build_post_response(post: Post, viewer: User, db) -> dict:
    """Build a PostRead-compatible dict with counts and the viewer's like.

    Parameters:
        post: The post record.
        viewer: The authenticated user.
        db: Database session.

    Returns:
        Dict matching PostRead schema.
    """
    comment_count: int = db.execute(
        select(func.count(Comment.id)).where(Comment.post_id == post.id)
    ).scalar_one()
    liked: Like | None = db.execute(
        select(Like).where(Like.post_id == post.id, Like.user_id == viewer.id)
    ).scalar_one_or_none()
    return {
        "id": post.id,
        "author": ConnectionUserRead.model_validate(post.author),
        "content": post.content,
        "image_url": post.image_url,
        "created_at": post.created_at,
        "likes": _like_count(post.id, db),
        "comments": comment_count,
        "is_liked": liked is not None,
    }


def _get_post_or_404(post_id: int, db) -> Post:
    post: Post | None = db.get(Post, post_id)
    if post is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND)
    return post


def _newest_first(query):
    return query.order_by(Post.created_at.desc(), Post.id.desc())


@router.get("", response_model=list[PostRead])
def list_posts(
    user: CurrentUser,
    db: DbSession,
    page: Page = Depends(pagination(50)),
) -> list[dict]:
    posts = db.execute(
        _newest_first(select(Post)).offset(page.offset).limit(page.limit)
    ).scalars().all()
    return [build_post_response(p, user, db) for p in posts]


@router.get("/feed", response_model=list[PostRead])
def feed(
    user: CurrentUser,
    db: DbSession,
    page: Page = Depends(pagination(50)),
) -> list[dict]:
    """List posts by the current user and their connections, newest first."""
    posts = db.execute(
        _newest_first(
            select(Post).where(
                or_(
                    Post.author_id == user.id,
                    Post.author_id.in_(connected_user_ids(user.id)),
                )
            )
        )
        .offset(page.offset)
        .limit(page.limit)
    ).scalars().all()
    return [build_post_response(p, user, db) for p in posts]


@router.post("", response_model=PostRead, status_code=status.HTTP_201_CREATED)
def create_post(request: PostCreate, user: CurrentUser, db: DbSession) -> dict:
    post = Post(
        author_id=user.id,
        content=request.content,
        image_url=request.image_url,
    )
    db.add(post)
    db.commit()
    return build_post_response(post, user, db)


@router.delete("/{post_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_post(post_id: int, user: CurrentUser, db: DbSession) -> None:
    """Delete a post with its likes and comments.

    Raises:
        HTTPException: 404 if not found, 403 if not the author.
    """
    post = _get_post_or_404(post_id, db)
    if post.author_id != user.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN)
    db.execute(delete(Like).where(Like.post_id == post.id))
    db.execute(delete(Comment).where(Comment.post_id == post.id))
    db.delete(post)
    db.commit()


@router.get("/{post_id}/comments", response_model=list[CommentRead])
def list_comments(
    post_id: int,
    user: CurrentUser,
    db: DbSession,
    page: Page = Depends(pagination(20)),
) -> list[Comment]:
    _get_post_or_404(post_id, db)
    return db.execute(
        select(Comment)
        .where(Comment.post_id == post_id)
        .order_by(Comment.created_at, Comment.id)
        .offset(page.offset)
        .limit(page.limit)
    ).scalars().all()


@router.post(
    "/{post_id}/comments",
    response_model=CommentRead,
    status_code=status.HTTP_201_CREATED,
)
def add_comment(
    post_id: int, request: CommentCreate, user: CurrentUser, db: DbSession
) -> Comment:
    _get_post_or_404(post_id, db)
    comment = Comment(post_id=post_id, author_id=user.id, content=request.content)
    db.add(comment)
    db.commit()
    return comment


@router.post("/{post_id}/like", response_model=LikeCount)
def like_post(post_id: int, user: CurrentUser, db: DbSession) -> dict:
    """Like a post. Liking an already liked post changes nothing.

    Returns:
        The post's like count after the operation.
    """
    _get_post_or_404(post_id, db)
    existing = db.execute(
        select(Like).where(Like.post_id == post_id, Like.user_id == user.id)
    ).scalar_one_or_none()
    if existing is None:
        db.add(Like(post_id=post_id, user_id=user.id))
        try:
            db.commit()
        except IntegrityError:
            # A concurrent like for the same pair won the insert.
            db.rollback()
    return {"likes": _like_count(post_id, db)}


@router.delete("/{post_id}/like", response_model=LikeCount)
def unlike_post(post_id: int, user: CurrentUser, db: DbSession) -> dict:
    """Remove the current user's like, if any.

    Returns:
        The post's like count after the operation.
    """
    _get_post_or_404(post_id, db)
    db.execute(
        delete(Like).where(Like.post_id == post_id, Like.user_id == user.id)
    )
    db.commit()
    return {"likes": _like_count(post_id, db)}
