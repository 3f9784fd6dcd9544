"""
Feed query assembly.

The base query selects posts written by the user or by anyone the user
follows, annotated with the author's username and a comment count. Filters
are appended only when present, every value as a bound parameter:

  since  → p.created_at >= :pN
  until  → p.created_at <= :pN
  search → title or content contains the term (case-insensitive)
  tags   → for each tag, some tag of the post contains it (AND-ed)
"""
from socialfeed.schemas import FeedFilter, Pageable
from socialfeed.store.query import LIKE_ESCAPE, QueryBuilder, like_pattern

_SORT_DIRECTIONS = {"ASC": "ASC", "DESC": "DESC"}

FEED_SELECT = """
SELECT
    p.id,
    p.user_id,
    p.title,
    p.content,
    p.version,
    p.created_at,
    p.updated_at,
    u.username,
    COALESCE(c.comments_count, 0) AS comments_count
FROM posts p
LEFT JOIN followers f ON f.user_id = p.user_id AND f.follower_id = """

FEED_JOINS = """
LEFT JOIN (
    SELECT post_id, COUNT(*) AS comments_count
    FROM comments
    GROUP BY post_id
) c ON c.post_id = p.id
LEFT JOIN users u ON u.id = p.user_id
WHERE (p.user_id = """


def build_feed_query(user_id: int, pageable: Pageable, feed_filter: FeedFilter) -> QueryBuilder:
    q = QueryBuilder()
    q.sql(FEED_SELECT).param(user_id)
    q.sql(FEED_JOINS).param(user_id).sql(" OR f.follower_id IS NOT NULL)")

    if feed_filter.since is not None:
        q.sql("\n  AND p.created_at >= ").param(feed_filter.since)
    if feed_filter.until is not None:
        q.sql("\n  AND p.created_at <= ").param(feed_filter.until)

    if feed_filter.search:
        pattern = like_pattern(feed_filter.search)
        q.sql("\n  AND (LOWER(p.title) LIKE ").param(pattern).sql(f" ESCAPE '{LIKE_ESCAPE}'")
        q.sql(" OR LOWER(p.content) LIKE ").param(pattern).sql(f" ESCAPE '{LIKE_ESCAPE}')")

    for tag in feed_filter.tags:
        q.sql(
            "\n  AND EXISTS (SELECT 1 FROM post_tags t"
            " WHERE t.post_id = p.id AND LOWER(t.tag) LIKE "
        ).param(like_pattern(tag)).sql(f" ESCAPE '{LIKE_ESCAPE}')")

    # Direction comes from a closed set, never from caller text.
    direction = _SORT_DIRECTIONS[pageable.sort]
    q.sql(f"\nORDER BY p.created_at {direction}, p.id {direction}")
    q.sql("\nLIMIT ").param(pageable.limit).sql(" OFFSET ").param(pageable.offset)
    return q
