"""Connection and invitation orchestration for the network page.

The controller keeps three independently fetched views: accepted
connections, suggestions and pending incoming invitations. The relation
between the viewer and another user is never transmitted by the server; it
is derived from which view the user shows up in.

Mutations never patch the views. After a successful request the affected
cache keys are invalidated and the views re-fetched, so between the
mutation and the end of the re-fetch the views may still show the previous
state (an accepted invitation still listed as pending, for instance).
"""

import asyncio
import enum
import logging
from dataclasses import dataclass

from app.client.api import ApiClient
from app.client.cache import QueryCache, QueryKey
from app.client.controller import BaseController, QueryView, TokenProvider
from app.client.errors import ApiError
from app.client.feed import FEED
from app.schemas.connection import ConnectionRead, ConnectionUserRead

logger = logging.getLogger(__name__)

CONNECTIONS = "connections"
SUGGESTIONS = "suggestions"
PENDING_CONNECTIONS = "pending_connections"
USER_CONNECTIONS = "user_connections"

# Every connection mutation can change all of these.
NETWORK_INVALIDATIONS: tuple[QueryKey, ...] = (
    (CONNECTIONS,),
    (SUGGESTIONS,),
    (PENDING_CONNECTIONS,),
    (USER_CONNECTIONS,),
    (FEED,),
)


class RelationState(str, enum.Enum):
    NONE = "none"
    PENDING_OUTGOING = "pending_outgoing"
    PENDING_INCOMING = "pending_incoming"
    CONNECTED = "connected"
    UNKNOWN = "unknown"


class Tab(str, enum.Enum):
    CONNECTIONS = "connections"
    SUGGESTIONS = "suggestions"
    INVITATIONS = "invitations"


class Layout(str, enum.Enum):
    GRID = "grid"
    LIST = "list"


@dataclass(frozen=True)
class TabCounts:
    connections: int
    suggestions: int
    invitations: int

    @property
    def invitation_badge(self) -> str | None:
        return str(self.invitations) if self.invitations else None


class NetworkController(BaseController):
    """Drive the connections, suggestions and invitations views.

    Parameters:
        api: API client.
        token_provider: Coroutine function returning a bearer token.
        cache: Query cache shared with the other controllers.
        connections_limit: Page size for accepted connections.
        suggestions_limit: Page size for suggestions.
        pending_limit: Page size for pending invitations.
    """

    def __init__(
        self,
        api: ApiClient,
        token_provider: TokenProvider,
        cache: QueryCache,
        *,
        connections_limit: int = 50,
        suggestions_limit: int = 10,
        pending_limit: int = 50,
    ):
        super().__init__(api, token_provider, cache)
        self.connections: QueryView[ConnectionUserRead] = QueryView(
            (CONNECTIONS, 1, connections_limit)
        )
        self.suggestions: QueryView[ConnectionUserRead] = QueryView(
            (SUGGESTIONS, 1, suggestions_limit)
        )
        self.pending: QueryView[ConnectionRead] = QueryView(
            (PENDING_CONNECTIONS, 1, pending_limit)
        )
        self.active_tab = Tab.CONNECTIONS
        self.layout = Layout.GRID

    def select_tab(self, value: str | None) -> bool:
        """Switch tabs from a raw ``?tab=`` value; unknown values are ignored."""
        try:
            self.active_tab = Tab(value)
        except ValueError:
            return False
        return True

    def set_layout(self, value: str) -> None:
        self.layout = Layout(value)

    def summary(self) -> TabCounts:
        return TabCounts(
            connections=self.connections.count,
            suggestions=self.suggestions.count,
            invitations=self.pending.count,
        )

    def relation_of(self, user_id: int) -> RelationState:
        """Derive the viewer's relation to ``user_id`` from the loaded views.

        Outgoing requests are not listed by the server, so
        ``PENDING_OUTGOING`` is never returned; such users are ``UNKNOWN``.
        """
        if any(user.id == user_id for user in self.connections.items):
            return RelationState.CONNECTED
        if any(inv.from_user.id == user_id for inv in self.pending.items):
            return RelationState.PENDING_INCOMING
        if any(user.id == user_id for user in self.suggestions.items):
            return RelationState.NONE
        return RelationState.UNKNOWN

    async def refresh(self) -> None:
        """Fetch the three views concurrently.

        Failures end up on each view's ``error``; nothing is raised.
        """
        await asyncio.gather(
            self._load_view(self.connections, self._load_connections),
            self._load_view(self.suggestions, self._load_suggestions),
            self._load_view(self.pending, self._load_pending),
        )

    async def _load_connections(self) -> list[ConnectionUserRead]:
        _, page, limit = self.connections.key
        return await self.api.fetch_connections(await self._token(), page, limit)

    async def _load_suggestions(self) -> list[ConnectionUserRead]:
        _, page, limit = self.suggestions.key
        return await self.api.fetch_suggestions(await self._token(), page, limit)

    async def _load_pending(self) -> list[ConnectionRead]:
        _, page, limit = self.pending.key
        return await self.api.fetch_pending_connections(
            await self._token(), page, limit
        )

    async def _after_mutation(self, refetch: bool) -> None:
        self._invalidate(NETWORK_INVALIDATIONS)
        if refetch and not self.cancellation.cancelled:
            await self.refresh()

    async def connect(self, user_id: int | None, *, refetch: bool = True) -> bool:
        """Send a connection request to a suggested user.

        A 409 from the server means the pair already has a relation (for
        example a repeated click) and is treated as success.

        Returns:
            False if the operation was aborted for a missing identifier.

        Raises:
            ClientError: For any other failure.
        """
        if self._missing(user_id, "Connect"):
            return False
        token = await self._token()
        try:
            await self.api.create_connection(token, user_id)
        except ApiError as exc:
            if exc.http_status != 409:
                raise
            logger.info(
                "Connection request to user %s already exists: %s",
                user_id, exc.server_message,
            )
        await self._after_mutation(refetch)
        return True

    async def accept(
        self, invitation_id: int | None, *, refetch: bool = True
    ) -> bool:
        """Accept a pending invitation.

        Repeated accepts are not filtered here; the server rejects them with
        a 409, which is raised.
        """
        if self._missing(invitation_id, "Accept invitation"):
            return False
        token = await self._token()
        await self.api.update_connection(token, invitation_id, "connected")
        await self._after_mutation(refetch)
        return True

    async def reject(
        self, invitation_id: int | None, *, refetch: bool = True
    ) -> bool:
        """Ignore a pending invitation, deleting the connection record."""
        if self._missing(invitation_id, "Reject invitation"):
            return False
        token = await self._token()
        await self.api.delete_connection(token, invitation_id)
        await self._after_mutation(refetch)
        return True
