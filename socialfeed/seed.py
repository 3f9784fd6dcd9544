#!/usr/bin/env python3
"""
Seed script: fills the database with a realistic dataset for trying the feed.

Creates:
  • N users (every other one active, all with role "user")
  • N follower edges between active users, never self-edges or repeats
  • N posts by random users, each with 2-4 random tags
  • N comments by random users on random posts

Everything goes through the stores' create_batch paths, so a failed row is
logged and skipped instead of aborting the run.

  python -m socialfeed.seed --users 200 --follows 2000 --posts 200 --comments 2000
"""
import argparse
import asyncio
import logging
import random
from typing import Optional

from socialfeed.config import settings
from socialfeed.database import build_engine, build_session_factory, init_db
from socialfeed.schemas import Comment, Follower, Post, User
from socialfeed.store import Storage, new_storage
from socialfeed.telemetry import setup_tracing

logger = logging.getLogger("socialfeed.seed")

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s — %(message)s"

USERNAMES = [
    "alice", "bob", "carol", "dave", "eve", "frank", "grace", "heidi",
    "ivan", "judy", "mallory", "oscar", "peggy", "romeo", "trent", "victor",
    "walter", "zoe", "ada", "linus", "dennis", "barbara", "ken", "margaret",
]

TITLES = [
    "10 Tips to Improve Your Productivity",
    "The Ultimate Guide to Remote Work",
    "Understanding Distributed SQL",
    "Why Cache Invalidation Is Hard",
    "Building a Personal Brand Step by Step",
    "Design Thinking for Engineers",
    "Lessons From Scaling a Social Feed",
    "Getting Started With Observability",
    "How to Run Effective Code Reviews",
    "A Practical Introduction to Machine Learning",
]

CONTENTS = [
    "Productivity starts with clear goals. Break large tasks into small chunks and protect your focus time.",
    "Remote teams live and die by written communication. Default to async and document decisions.",
    "Distributed SQL databases scale horizontally while keeping the relational model you already know.",
    "A cache is only as good as its invalidation story. Delete on write and let reads repopulate.",
    "Traces, metrics and logs answer different questions. Start with the one your on-call needs most.",
    "Optimistic concurrency lets readers proceed without locks and rejects writers who lost the race.",
    "Good code review is about shared ownership, not gatekeeping. Ask questions before giving answers.",
    "Feature pipelines are where most machine learning projects spend their time. Invest in them early.",
]

TAGS = [
    "Technology", "Productivity", "Startups", "Leadership", "Marketing",
    "Remote Work", "AI", "Machine Learning", "Cloud Computing", "Web Development",
    "Databases", "DevOps", "Observability", "Career Development", "Design Thinking",
    "Open Source", "Security", "Data Analytics", "Team Building", "Python",
]

COMMENTS = [
    "Great article! Really enjoyed the insights.",
    "Thanks for sharing this, very helpful!",
    "Interesting perspective, I hadn't thought of it that way.",
    "Clear and concise, great job!",
    "I've bookmarked this for future reference.",
    "This helped me get unstuck, thanks!",
    "Good points, I hadn't considered those before.",
    "Sharing this with my team.",
]


# ─────────────────────── Generators ───────────────────────────────────────

def generate_users(num: int) -> list[tuple[User, str]]:
    pairs = []
    for i in range(num):
        username = f"{USERNAMES[i % len(USERNAMES)]}{i}"
        user = User(
            username=username,
            email=f"{username}@example.com",
            is_active=i % 2 == 0,
        )
        pairs.append((user, f"{username}Password"))
    return pairs


def random_tags(rng: random.Random) -> list[str]:
    return rng.sample(TAGS, k=rng.randint(2, 4))


def generate_followers(num: int, users: list[User], rng: random.Random) -> list[Follower]:
    active = [u.id for u in users if u.is_active and u.id is not None]
    possible = len(active) * (len(active) - 1)
    target = min(num, possible)
    if target < num:
        logger.warning("Only %d distinct follower edges possible; generating %d", possible, target)

    edges: list[Follower] = []
    seen: set[tuple[int, int]] = set()
    while len(edges) < target:
        user_id, follower_id = rng.choice(active), rng.choice(active)
        if user_id == follower_id or (user_id, follower_id) in seen:
            continue
        seen.add((user_id, follower_id))
        edges.append(Follower(user_id=user_id, follower_id=follower_id))
    return edges


def generate_posts(num: int, users: list[User], rng: random.Random) -> list[Post]:
    author_ids = [u.id for u in users if u.id is not None]
    if not author_ids:
        return []
    return [
        Post(
            title=rng.choice(TITLES),
            content=rng.choice(CONTENTS),
            tags=random_tags(rng),
            user_id=rng.choice(author_ids),
        )
        for _ in range(num)
    ]


def generate_comments(
    num: int, users: list[User], posts: list[Post], rng: random.Random
) -> list[Comment]:
    user_ids = [u.id for u in users if u.id is not None]
    post_ids = [p.id for p in posts if p.id is not None]
    if not user_ids or not post_ids:
        return []
    return [
        Comment(
            post_id=rng.choice(post_ids),
            user_id=rng.choice(user_ids),
            content=rng.choice(COMMENTS),
        )
        for _ in range(num)
    ]


# ─────────────────────── Runner ───────────────────────────────────────────

async def seed(
    storage: Storage,
    users: int,
    follows: int,
    posts: int,
    comments: int,
    rng: Optional[random.Random] = None,
) -> None:
    rng = rng or random.Random()

    logger.info("Generating %d users...", users)
    user_pairs = generate_users(users)
    await storage.users.create_batch(user_pairs)
    created_users = [u for u, _ in user_pairs if u.id is not None]

    logger.info("Generating %d follower edges...", follows)
    await storage.followers.create_batch(generate_followers(follows, created_users, rng))

    logger.info("Generating %d posts...", posts)
    post_rows = generate_posts(posts, created_users, rng)
    await storage.posts.create_batch(post_rows)

    logger.info("Generating %d comments...", comments)
    await storage.comments.create_batch(
        generate_comments(comments, created_users, post_rows, rng)
    )

    logger.info("Database seeding complete!")


async def main(args: argparse.Namespace) -> None:
    engine = build_engine(settings)
    try:
        await init_db(engine)
        storage = new_storage(build_session_factory(engine), settings)
        await seed(
            storage,
            users=args.users,
            follows=args.follows,
            posts=args.posts,
            comments=args.comments,
            rng=random.Random(args.random_seed) if args.random_seed is not None else None,
        )
    finally:
        await engine.dispose()


def cli() -> None:
    parser = argparse.ArgumentParser(description="Seed the social feed database")
    parser.add_argument("--users", type=int, default=200)
    parser.add_argument("--follows", type=int, default=2000)
    parser.add_argument("--posts", type=int, default=200)
    parser.add_argument("--comments", type=int, default=2000)
    parser.add_argument("--random-seed", type=int, default=None,
                        help="Make generated data reproducible")
    parser.add_argument("--trace", action="store_true",
                        help="Export spans of the seeding run over OTLP")
    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format=LOG_FORMAT,
    )
    if args.trace:
        setup_tracing(settings)
    asyncio.run(main(args))


if __name__ == "__main__":
    cli()
