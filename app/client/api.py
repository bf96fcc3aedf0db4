"""Async client for the network REST API.

Each method maps one domain operation onto exactly one HTTP request. The
bearer token is passed in by the caller on every call; this module never
obtains, refreshes or stores credentials, and it never retries.
"""

import logging
from typing import Any, Literal
from urllib.parse import quote

import httpx
from pydantic import BaseModel, TypeAdapter, ValidationError

from app.client.errors import (
    ApiError,
    MissingIdentifierError,
    ResponseShapeError,
    TransportError,
)
from app.config import settings
from app.schemas.connection import ConnectionRead, ConnectionUserRead
from app.schemas.post import CommentRead, LikeCount, PostRead
from app.schemas.user import UserRead

logger = logging.getLogger(__name__)

ConnectionStatus = Literal["pending", "connected"]

_user = TypeAdapter(UserRead)
_users = TypeAdapter(list[UserRead])
_connection = TypeAdapter(ConnectionRead)
_connections = TypeAdapter(list[ConnectionRead])
_connection_users = TypeAdapter(list[ConnectionUserRead])
_post = TypeAdapter(PostRead)
_posts = TypeAdapter(list[PostRead])
_comment = TypeAdapter(CommentRead)
_comments = TypeAdapter(list[CommentRead])
_like_count = TypeAdapter(LikeCount)


def _server_message(response: httpx.Response) -> str:
    """Extract the most useful error text from a failed response.

    FastAPI errors carry a ``detail`` string; anything else falls back to the
    raw body, then to the reason phrase.
    """
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict) and isinstance(body.get("detail"), str):
        return body["detail"]
    return response.text or response.reason_phrase


def _parse(adapter: TypeAdapter, data: Any) -> Any:
    try:
        return adapter.validate_python(data)
    except ValidationError as exc:
        raise ResponseShapeError(str(exc)) from exc


def _parse_page(adapter: TypeAdapter, data: Any, limit: int) -> list:
    items = _parse(adapter, data)
    if len(items) > limit:
        raise ResponseShapeError(
            f"Server returned {len(items)} items for a page of {limit}"
        )
    return items


def _require(value: Any, name: str) -> Any:
    if value is None:
        raise MissingIdentifierError(f"{name} is required")
    return value


class ApiClient:
    """HTTP client for the ``/api`` endpoints.

    Parameters:
        base_url: Server root; defaults to ``settings.api_base_url``.
        transport: Optional httpx transport, e.g. to talk to an app in-process.
        timeout: Seconds before a request fails with :class:`TransportError`.
    """

    def __init__(
        self,
        base_url: str | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float | None = None,
    ):
        self._client = httpx.AsyncClient(
            base_url=base_url or settings.api_base_url,
            transport=transport,
            timeout=timeout or settings.api_timeout_seconds,
        )

    async def __aenter__(self) -> "ApiClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        token: str,
        *,
        params: dict[str, Any] | None = None,
        json: BaseModel | dict[str, Any] | None = None,
    ) -> Any:
        if isinstance(json, BaseModel):
            json = json.model_dump(mode="json", exclude_unset=True)
        logger.debug("%s %s %s", method, path, params or "")
        try:
            response = await self._client.request(
                method,
                f"/api{path}",
                headers={"Authorization": f"Bearer {token}"},
                params=params,
                json=json,
            )
        except httpx.TransportError as exc:
            raise TransportError(str(exc) or type(exc).__name__) from exc

        if not response.is_success:
            raise ApiError(response.status_code, _server_message(response))
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise ResponseShapeError("Response body is not JSON") from exc

    async def _get_page(
        self,
        adapter: TypeAdapter,
        path: str,
        token: str,
        page: int,
        limit: int,
    ) -> list:
        data = await self._request(
            "GET", path, token, params={"page": page, "limit": limit}
        )
        return _parse_page(adapter, data, limit)

    # Posts

    async def fetch_posts(
        self, token: str, page: int = 1, limit: int = 50
    ) -> list[PostRead]:
        return await self._get_page(_posts, "/posts", token, page, limit)

    async def fetch_feed(
        self, token: str, page: int = 1, limit: int = 50
    ) -> list[PostRead]:
        return await self._get_page(_posts, "/posts/feed", token, page, limit)

    async def create_post(
        self, token: str, content: str, image_url: str | None = None
    ) -> PostRead:
        payload: dict[str, Any] = {"content": content}
        if image_url is not None:
            payload["image_url"] = image_url
        data = await self._request("POST", "/posts", token, json=payload)
        return _parse(_post, data)

    async def delete_post(self, token: str, post_id: int) -> None:
        await self._request(
            "DELETE", f"/posts/{_require(post_id, 'post_id')}", token
        )

    # Comments

    async def fetch_comments(
        self, token: str, post_id: int, page: int = 1, limit: int = 20
    ) -> list[CommentRead]:
        return await self._get_page(
            _comments,
            f"/posts/{_require(post_id, 'post_id')}/comments",
            token,
            page,
            limit,
        )

    async def add_comment(
        self, token: str, post_id: int, content: str
    ) -> CommentRead:
        data = await self._request(
            "POST",
            f"/posts/{_require(post_id, 'post_id')}/comments",
            token,
            json={"content": content},
        )
        return _parse(_comment, data)

    # Users

    async def fetch_user(self, token: str, user_id: int) -> UserRead:
        data = await self._request(
            "GET", f"/users/{_require(user_id, 'user_id')}", token
        )
        return _parse(_user, data)

    async def fetch_user_by_username(self, token: str, username: str) -> UserRead:
        username = quote(_require(username, "username"), safe="")
        data = await self._request("GET", f"/users/username/{username}", token)
        return _parse(_user, data)

    async def fetch_current_user(self, token: str) -> UserRead:
        data = await self._request("GET", "/users/me", token)
        return _parse(_user, data)

    async def upsert_user(self, token: str, profile: BaseModel) -> UserRead:
        """Create or update the token subject's profile.

        Parameters:
            token: Bearer token.
            profile: A :class:`app.schemas.user.UserUpsert`; only the fields
                that were set are sent.
        """
        data = await self._request("POST", "/users", token, json=profile)
        return _parse(_user, data)

    async def search_users(self, token: str, query: str) -> list[UserRead]:
        data = await self._request(
            "GET", "/users/search", token, params={"query": query}
        )
        return _parse(_users, data)

    async def fetch_user_posts(
        self, token: str, user_id: int, page: int = 1, limit: int = 50
    ) -> list[PostRead]:
        return await self._get_page(
            _posts, f"/users/{_require(user_id, 'user_id')}/posts", token, page, limit
        )

    async def fetch_user_comments(
        self, token: str, user_id: int, page: int = 1, limit: int = 50
    ) -> list[CommentRead]:
        return await self._get_page(
            _comments,
            f"/users/{_require(user_id, 'user_id')}/comments",
            token,
            page,
            limit,
        )

    # Connections

    async def fetch_user_connections(
        self, token: str, user_id: int, page: int = 1, limit: int = 50
    ) -> list[ConnectionUserRead]:
        return await self._get_page(
            _connection_users,
            f"/users/{_require(user_id, 'user_id')}/connections",
            token,
            page,
            limit,
        )

    async def fetch_connections(
        self, token: str, page: int = 1, limit: int = 50
    ) -> list[ConnectionUserRead]:
        return await self._get_page(
            _connection_users, "/connections", token, page, limit
        )

    async def fetch_pending_connections(
        self, token: str, page: int = 1, limit: int = 50
    ) -> list[ConnectionRead]:
        return await self._get_page(
            _connections, "/connections/pending", token, page, limit
        )

    async def fetch_suggestions(
        self, token: str, page: int = 1, limit: int = 10
    ) -> list[ConnectionUserRead]:
        return await self._get_page(
            _connection_users, "/connections/suggestions", token, page, limit
        )

    async def create_connection(self, token: str, to: int) -> ConnectionRead:
        data = await self._request(
            "POST", "/connections", token, json={"to": _require(to, "to")}
        )
        return _parse(_connection, data)

    async def update_connection(
        self, token: str, connection_id: int, status: ConnectionStatus
    ) -> ConnectionRead:
        data = await self._request(
            "PATCH",
            f"/connections/{_require(connection_id, 'connection_id')}",
            token,
            json={"status": status},
        )
        return _parse(_connection, data)

    async def delete_connection(self, token: str, connection_id: int) -> None:
        """Reject, cancel or remove a connection."""
        await self._request(
            "DELETE",
            f"/connections/{_require(connection_id, 'connection_id')}",
            token,
        )

    # Likes

    async def like_post(self, token: str, post_id: int) -> LikeCount:
        data = await self._request(
            "POST", f"/posts/{_require(post_id, 'post_id')}/like", token
        )
        return _parse(_like_count, data)

    async def unlike_post(self, token: str, post_id: int) -> LikeCount:
        data = await self._request(
            "DELETE", f"/posts/{_require(post_id, 'post_id')}/like", token
        )
        return _parse(_like_count, data)
