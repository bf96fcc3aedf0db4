import logging

from app.client.api import ApiClient
from app.client.cache import QueryCache, QueryKey
from app.client.controller import BaseController, QueryView, TokenProvider
from app.schemas.post import CommentRead, PostRead

logger = logging.getLogger(__name__)

FEED = "feed"
POSTS = "posts"
USER_POSTS = "user_posts"
COMMENTS = "comments"
USER_COMMENTS = "user_comments"

POST_INVALIDATIONS: tuple[QueryKey, ...] = ((FEED,), (POSTS,), (USER_POSTS,))


class FeedController(BaseController):
    """Drive the activity feed, its likes and comments.

    Likes go through the same invalidate-and-refetch path as every other
    mutation: the count returned by the server is not written anywhere, the
    feed is re-fetched instead.
    """

    def __init__(
        self,
        api: ApiClient,
        token_provider: TokenProvider,
        cache: QueryCache,
        *,
        limit: int = 50,
        comments_limit: int = 20,
    ):
        super().__init__(api, token_provider, cache)
        self.feed: QueryView[PostRead] = QueryView((FEED, 1, limit))
        self.comments: dict[int, QueryView[CommentRead]] = {}
        self.comments_limit = comments_limit

    def post(self, post_id: int) -> PostRead | None:
        for post in self.feed.items:
            if post.id == post_id:
                return post
        return None

    async def refresh(self) -> None:
        await self._load_view(self.feed, self._load_feed)

    async def _load_feed(self) -> list[PostRead]:
        _, page, limit = self.feed.key
        return await self.api.fetch_feed(await self._token(), page, limit)

    async def _after_post_mutation(self, refetch: bool) -> None:
        self._invalidate(POST_INVALIDATIONS)
        if refetch and not self.cancellation.cancelled:
            await self.refresh()

    async def create_post(
        self, content: str, image_url: str | None = None, *, refetch: bool = True
    ) -> PostRead:
        post = await self.api.create_post(await self._token(), content, image_url)
        await self._after_post_mutation(refetch)
        return post

    async def delete_post(self, post_id: int | None, *, refetch: bool = True) -> bool:
        if self._missing(post_id, "Delete post"):
            return False
        await self.api.delete_post(await self._token(), post_id)
        self._invalidate(((COMMENTS, post_id),))
        await self._after_post_mutation(refetch)
        return True

    async def like(self, post_id: int | None, *, refetch: bool = True) -> bool:
        if self._missing(post_id, "Like post"):
            return False
        updated = await self.api.like_post(await self._token(), post_id)
        logger.debug("Post %s liked, server count %s", post_id, updated.likes)
        await self._after_post_mutation(refetch)
        return True

    async def unlike(self, post_id: int | None, *, refetch: bool = True) -> bool:
        if self._missing(post_id, "Unlike post"):
            return False
        updated = await self.api.unlike_post(await self._token(), post_id)
        logger.debug("Post %s unliked, server count %s", post_id, updated.likes)
        await self._after_post_mutation(refetch)
        return True

    async def toggle_like(self, post_id: int | None, *, refetch: bool = True) -> bool:
        """Like or unlike depending on the feed's current ``is_liked`` flag."""
        if self._missing(post_id, "Toggle like"):
            return False
        post = self.post(post_id)
        if post is not None and post.is_liked:
            return await self.unlike(post_id, refetch=refetch)
        return await self.like(post_id, refetch=refetch)

    async def load_comments(self, post_id: int | None) -> QueryView[CommentRead] | None:
        if self._missing(post_id, "Load comments"):
            return None
        view = self.comments.setdefault(
            post_id, QueryView((COMMENTS, post_id, 1, self.comments_limit))
        )

        async def loader() -> list[CommentRead]:
            return await self.api.fetch_comments(
                await self._token(), post_id, 1, self.comments_limit
            )

        await self._load_view(view, loader)
        return view

    async def add_comment(
        self, post_id: int | None, content: str, *, refetch: bool = True
    ) -> CommentRead | None:
        if self._missing(post_id, "Add comment"):
            return None
        comment = await self.api.add_comment(await self._token(), post_id, content)
        self._invalidate(((COMMENTS, post_id), (USER_COMMENTS,)))
        await self._after_post_mutation(refetch)
        if refetch and not self.cancellation.cancelled:
            await self.load_comments(post_id)
        return comment
