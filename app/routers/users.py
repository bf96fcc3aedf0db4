import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError

from app.dependencies import (
    CurrentUser,
    DbSession,
    Page,
    TokenClaims,
    connected_user_ids,
    get_user_or_404,
    pagination,
)
from app.models.comment import Comment
from app.models.post import Post
from app.models.user import User
from app.routers.posts import build_post_response
from app.schemas.connection import ConnectionUserRead
from app.schemas.post import CommentRead, PostRead
from app.schemas.user import UserRead, UserUpsert

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/users", tags=["users"])

SEARCH_LIMIT = 20


def _unique_username(base: str, db) -> str:
    candidate = base
    suffix = 1
    while db.execute(
        select(User.id).where(User.username == candidate)
    ).first() is not None:
        suffix += 1
        candidate = f"{base}-{suffix}"
    return candidate


@router.post("", response_model=UserRead)
def upsert_user(
    request: UserUpsert, claims: TokenClaims, response: Response, db: DbSession
) -> User:
    """Create the profile for the token's subject, or update it.

    Parameters:
        request: Profile fields.
        claims: Verified token claims.
        response: Outgoing response, used to report creation with 201.
        db: Database session.

    Returns:
        The stored profile.

    Raises:
        HTTPException: 403 if the body names a different subject,
            409 if the requested username is taken.
    """
    sub: str = claims["sub"]
    if request.sub is not None and request.sub != sub:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN)

    if request.username is not None:
        owner = db.execute(
            select(User).where(User.username == request.username)
        ).scalar_one_or_none()
        if owner is not None and owner.sub != sub:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Username is already taken.",
            )

    fields = request.model_dump(exclude={"sub"}, exclude_unset=True)
    user: User | None = db.execute(
        select(User).where(User.sub == sub)
    ).scalar_one_or_none()
    if user is None:
        if request.username is None:
            fields["username"] = _unique_username(User.slugify(request.name), db)
        user = User(sub=sub, **fields)
        db.add(user)
        response.status_code = status.HTTP_201_CREATED
    else:
        for field, value in fields.items():
            setattr(user, field, value)

    try:
        db.commit()
    except IntegrityError:
        # Another registration claimed the same username or subject first.
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Username is already taken.",
        )
    if response.status_code == status.HTTP_201_CREATED:
        logger.info("Registered user %s as %s", sub, user.username)
    return user


@router.get("/me", response_model=UserRead)
def get_current_profile(user: CurrentUser) -> User:
    return user


@router.get("/search", response_model=list[UserRead])
def search_users(
    user: CurrentUser,
    db: DbSession,
    query: str = Query(min_length=1),
) -> list[User]:
    pattern = f"%{query}%"
    return db.execute(
        select(User)
        .where(or_(User.name.ilike(pattern), User.title.ilike(pattern)))
        .order_by(User.name, User.id)
        .limit(SEARCH_LIMIT)
    ).scalars().all()


@router.get("/username/{username}", response_model=UserRead)
def get_user_by_username(username: str, user: CurrentUser, db: DbSession) -> User:
    found: User | None = db.execute(
        select(User).where(User.username == username)
    ).scalar_one_or_none()
    if found is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND)
    return found


@router.get("/{user_id}", response_model=UserRead)
def get_user(user_id: int, user: CurrentUser, db: DbSession) -> User:
    return get_user_or_404(user_id, db)


@router.get("/{user_id}/connections", response_model=list[ConnectionUserRead])
def list_user_connections(
    user_id: int,
    user: CurrentUser,
    db: DbSession,
    page: Page = Depends(pagination(50)),
) -> list[User]:
    get_user_or_404(user_id, db)
    return db.execute(
        select(User)
        .where(User.id.in_(connected_user_ids(user_id)))
        .order_by(User.name, User.id)
        .offset(page.offset)
        .limit(page.limit)
    ).scalars().all()


@router.get("/{user_id}/posts", response_model=list[PostRead])
def list_user_posts(
    user_id: int,
    user: CurrentUser,
    db: DbSession,
    page: Page = Depends(pagination(50)),
) -> list[dict]:
    get_user_or_404(user_id, db)
    posts = db.execute(
        select(Post)
        .where(Post.author_id == user_id)
        .order_by(Post.created_at.desc(), Post.id.desc())
        .offset(page.offset)
        .limit(page.limit)
    ).scalars().all()
    return [build_post_response(p, user, db) for p in posts]


@router.get("/{user_id}/comments", response_model=list[CommentRead])
def list_user_comments(
    user_id: int,
    user: CurrentUser,
    db: DbSession,
    page: Page = Depends(pagination(50)),
) -> list[Comment]:
    get_user_or_404(user_id, db)
    return db.execute(
        select(Comment)
        .where(Comment.author_id == user_id)
        .order_by(Comment.created_at.desc(), Comment.id.desc())
        .offset(page.offset)
        .limit(page.limit)
    ).scalars().all()
