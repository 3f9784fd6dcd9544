"""
User feed: the actor's own posts plus posts of everyone they follow,
filtered, ordered by creation time and paginated in one query.
"""
import logging
import time
from typing import Mapping, Optional

from opentelemetry import trace

from socialfeed.cache.aside import CachedPostStore
from socialfeed.schemas import FeedFilter, Pageable, PostWithMetadata
from socialfeed.telemetry import FEED_LATENCY

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


class FeedService:
    def __init__(self, posts: CachedPostStore) -> None:
        self.posts = posts

    async def get_user_feed(
        self,
        user_id: int,
        pageable: Optional[Pageable] = None,
        feed_filter: Optional[FeedFilter] = None,
    ) -> list[PostWithMetadata]:
        pageable = pageable or Pageable()
        feed_filter = feed_filter or FeedFilter()
        start_time = time.time()

        with tracer.start_as_current_span("get_user_feed") as span:
            span.set_attribute("user.id", user_id)
            span.set_attribute("feed.limit", pageable.limit)
            span.set_attribute("feed.offset", pageable.offset)
            span.set_attribute("feed.sort", pageable.sort)
            if feed_filter.tags:
                span.set_attribute("feed.tags", feed_filter.tags)

            feed = await self.posts.get_user_feed(user_id, pageable, feed_filter)

            latency_ms = (time.time() - start_time) * 1000
            FEED_LATENCY.observe(latency_ms / 1000)
            span.set_attribute("feed.size", len(feed))
            span.set_attribute("feed.latency_ms", latency_ms)

        logger.debug(
            "Feed for user %s: %d posts in %.1fms", user_id, len(feed), latency_ms
        )
        return feed

    async def get_user_feed_from_params(
        self, user_id: int, params: Mapping[str, str]
    ) -> list[PostWithMetadata]:
        """Parse raw query-string values (limit, offset, sort, tags, search, since, until)."""
        pageable = Pageable.parse(params)
        feed_filter = FeedFilter.parse(params)
        return await self.get_user_feed(user_id, pageable, feed_filter)
