import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError

from app.dependencies import (
    CurrentUser,
    DbSession,
    Page,
    connected_user_ids,
    pagination,
)
from app.models.connection import CONNECTED, PENDING, Connection
from app.models.user import User
from app.schemas.connection import (
    ConnectionCreate,
    ConnectionRead,
    ConnectionUpdate,
    ConnectionUserRead,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/connections", tags=["connections"])


def _build_response(connection: Connection, db) -> dict:
    """Build a ConnectionRead-compatible dict with both parties' info.

    Parameters:
        connection: The connection record.
        db: Database session.

    Returns:
        Dict matching ConnectionRead schema.
    """
    requester: User | None = db.get(User, connection.requester_id)
    addressee: User | None = db.get(User, connection.addressee_id)
    return {
        "id": connection.id,
        "status": connection.status,
        "from": ConnectionUserRead.model_validate(requester),
        "to": ConnectionUserRead.model_validate(addressee),
        "created_at": connection.created_at,
        "connected_at": connection.connected_at,
    }


def _get_connection_for_party(connection_id: int, user: User, db) -> Connection:
    connection: Connection | None = db.get(Connection, connection_id)
    if connection is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND)
    if connection.requester_id != user.id and connection.addressee_id != user.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN)
    return connection


@router.get("", response_model=list[ConnectionUserRead])
def list_connections(
    user: CurrentUser,
    db: DbSession,
    page: Page = Depends(pagination(50)),
) -> list[User]:
    """List the users connected to the current user.

    Parameters:
        user: The authenticated user.
        db: Database session.
        page: Requested page.

    Returns:
        One page of connected users.
    """
    return db.execute(
        select(User)
        .where(User.id.in_(connected_user_ids(user.id)))
        .order_by(User.name, User.id)
        .offset(page.offset)
        .limit(page.limit)
    ).scalars().all()


@router.get("/pending", response_model=list[ConnectionRead])
def list_pending(
    user: CurrentUser,
    db: DbSession,
    page: Page = Depends(pagination(50)),
) -> list[dict]:
    """List pending invitations received by the current user.

    Requests the current user sent are not included.
    """
    connections: list[Connection] = db.execute(
        select(Connection)
        .where(
            Connection.status == PENDING,
            Connection.addressee_id == user.id,
        )
        .order_by(Connection.created_at.desc(), Connection.id.desc())
        .offset(page.offset)
        .limit(page.limit)
    ).scalars().all()
    return [_build_response(c, db) for c in connections]


@router.get("/suggestions", response_model=list[ConnectionUserRead])
def list_suggestions(
    user: CurrentUser,
    db: DbSession,
    page: Page = Depends(pagination(10)),
) -> list[User]:
    """List users with no relation of any status to the current user."""
    requested_by = select(Connection.requester_id).where(
        Connection.addressee_id == user.id
    )
    requested_to = select(Connection.addressee_id).where(
        Connection.requester_id == user.id
    )
    return db.execute(
        select(User)
        .where(
            User.id != user.id,
            User.id.not_in(requested_by),
            User.id.not_in(requested_to),
        )
        .order_by(User.id)
        .offset(page.offset)
        .limit(page.limit)
    ).scalars().all()


@router.post("", response_model=ConnectionRead, status_code=status.HTTP_201_CREATED)
def create_connection(
    request: ConnectionCreate, user: CurrentUser, db: DbSession
) -> dict:
    """Send a connection request to another user.

    Parameters:
        request: Connection request naming the target user.
        user: The authenticated user.
        db: Database session.

    Returns:
        The created pending connection.

    Raises:
        HTTPException: 400 if targeting yourself, 404 if user not found,
            409 if the pair already has a relation.
    """
    target: User | None = db.get(User, request.to)
    if target is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND)

    if target.id == user.id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Cannot connect with yourself.",
        )

    existing: Connection | None = db.execute(
        select(Connection).where(
            or_(
                (Connection.requester_id == user.id)
                & (Connection.addressee_id == target.id),
                (Connection.requester_id == target.id)
                & (Connection.addressee_id == user.id),
            )
        )
    ).scalar_one_or_none()
    if existing is not None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="A connection with this user already exists.",
        )

    connection: Connection = Connection(
        requester_id=user.id, addressee_id=target.id
    )
    db.add(connection)
    try:
        db.commit()
    except IntegrityError:
        # A concurrent request for the same pair won the insert.
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="A connection with this user already exists.",
        )
    logger.info(
        "Connection %s requested: user %s -> user %s",
        connection.id, user.id, target.id,
    )
    return _build_response(connection, db)


@router.patch("/{connection_id}", response_model=ConnectionRead)
def update_connection(
    connection_id: int,
    request: ConnectionUpdate,
    user: CurrentUser,
    db: DbSession,
) -> dict:
    """Move a connection to a new status.

    Parameters:
        connection_id: The connection to update.
        request: The requested status.
        user: The authenticated user.
        db: Database session.

    Returns:
        The updated connection.

    Raises:
        HTTPException: 404 if not found, 403 if not a party or if a
            non-addressee tries to accept, 409 if already connected.
    """
    connection = _get_connection_for_party(connection_id, user, db)

    if connection.status == CONNECTED:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Connection is already established.",
        )

    if request.status == CONNECTED:
        if connection.addressee_id != user.id:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN)
        connection.status = CONNECTED
        connection.connected_at = datetime.now(timezone.utc)
        db.commit()
        logger.info("Connection %s accepted by user %s", connection.id, user.id)

    return _build_response(connection, db)


@router.delete("/{connection_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_connection(
    connection_id: int, user: CurrentUser, db: DbSession
) -> None:
    """Remove a connection, or reject/cancel a pending request.

    Raises:
        HTTPException: 404 if not found, 403 if not a party to the connection.
    """
    connection = _get_connection_for_party(connection_id, user, db)
    previous_status = connection.status
    other_user_id = connection.other_user_id(user.id)
    db.delete(connection)
    db.commit()
    logger.info(
        "Connection %s (%s) with user %s deleted by user %s",
        connection_id, previous_status, other_user_id, user.id,
    )
