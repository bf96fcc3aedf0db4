import asyncio
import logging

from app.client.api import ApiClient
from app.client.cache import QueryCache
from app.client.controller import BaseController, QueryView, TokenProvider
from app.client.errors import ClientError
from app.client.feed import USER_POSTS
from app.client.network import USER_CONNECTIONS
from app.schemas.connection import ConnectionUserRead
from app.schemas.post import PostRead
from app.schemas.user import UserRead

logger = logging.getLogger(__name__)


class ProfileController(BaseController):
    """Load a profile together with that user's connections and posts.

    Parameters:
        viewer_sub: Identity subject of the signed-in user, used to tell
            whether a profile looked up by username is the viewer's own.
    """

    def __init__(
        self,
        api: ApiClient,
        token_provider: TokenProvider,
        cache: QueryCache,
        *,
        viewer_sub: str | None = None,
    ):
        super().__init__(api, token_provider, cache)
        self.viewer_sub = viewer_sub
        self.username: str | None = None
        self.profile: UserRead | None = None
        self.error: ClientError | None = None
        self.connections: QueryView[ConnectionUserRead] | None = None
        self.posts: QueryView[PostRead] | None = None

    @property
    def is_current_user(self) -> bool:
        if self.username is None:
            return True
        return self.profile is not None and self.profile.sub == self.viewer_sub

    async def load(self, username: str | None = None) -> None:
        """Fetch the profile, then its connections and posts concurrently.

        Without a username the signed-in user's own profile is loaded.
        Failures are kept on ``error`` or on the views.
        """
        self.username = username
        self.profile = None
        self.connections = None
        self.posts = None
        if username is None:
            key = ("current_user",)

            async def loader() -> UserRead:
                return await self.api.fetch_current_user(await self._token())
        else:
            key = ("user_by_username", username)

            async def loader() -> UserRead:
                return await self.api.fetch_user_by_username(
                    await self._token(), username
                )

        try:
            profile = await self.cache.fetch(key, loader)
        except ClientError as exc:
            if not self.cancellation.cancelled:
                logger.warning("Loading profile %s failed: %s", key, exc)
                self.error = exc
            return
        if self.cancellation.cancelled:
            return

        self.profile = profile
        self.error = None
        self.connections = QueryView((USER_CONNECTIONS, profile.id, 1, 50))
        self.posts = QueryView((USER_POSTS, profile.id, 1, 50))

        async def load_connections() -> list[ConnectionUserRead]:
            return await self.api.fetch_user_connections(
                await self._token(), profile.id
            )

        async def load_posts() -> list[PostRead]:
            return await self.api.fetch_user_posts(await self._token(), profile.id)

        await asyncio.gather(
            self._load_view(self.connections, load_connections),
            self._load_view(self.posts, load_posts),
        )
