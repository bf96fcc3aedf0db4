import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, TypeVar

from app.client.api import ApiClient
from app.client.cache import Loader, QueryCache, QueryKey
from app.client.cancellation import CancellationToken
from app.client.errors import ClientError

logger = logging.getLogger(__name__)

T = TypeVar("T")

TokenProvider = Callable[[], Awaitable[str]]


@dataclass
class QueryView(Generic[T]):
    """Snapshot of one fetched collection plus its own loading/error state."""

    key: QueryKey
    items: tuple[T, ...] = ()
    loading: bool = False
    error: ClientError | None = None

    @property
    def count(self) -> int:
        return len(self.items)


class BaseController:
    """Shared plumbing for controllers driving views from the query cache.

    Parameters:
        api: API client.
        token_provider: Coroutine function returning a current bearer token
            from the identity provider. Called once per operation.
        cache: Query cache shared with other controllers.
    """

    def __init__(
        self,
        api: ApiClient,
        token_provider: TokenProvider,
        cache: QueryCache,
    ):
        self.api = api
        self.cache = cache
        self.cancellation = CancellationToken()
        self._token_provider = token_provider

    def close(self) -> None:
        """Stop applying results; requests already sent still complete."""
        self.cancellation.cancel()

    async def _token(self) -> str:
        return await self._token_provider()

    def _missing(self, value: Any, operation: str) -> bool:
        if value is None:
            logger.error("%s aborted: identifier is missing", operation)
            return True
        return False

    def _invalidate(self, keys: tuple[QueryKey, ...]) -> None:
        for key in keys:
            self.cache.invalidate(key)

    async def _load_view(self, view: QueryView, loader: Loader) -> None:
        view.loading = True
        try:
            items = await self.cache.fetch(view.key, loader)
        except ClientError as exc:
            if not self.cancellation.cancelled:
                logger.warning("Loading %s failed: %s", view.key, exc)
                view.error = exc
                view.loading = False
            return
        if self.cancellation.cancelled:
            logger.debug("Discarding %s result after close", view.key)
            return
        view.items = tuple(items)
        view.error = None
        view.loading = False
