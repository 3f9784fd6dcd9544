"""
Shared plumbing for the entity stores.

  • store_operation / batch_operation: bound every call by a time budget and
    translate anything the driver raises into the domain error kinds.
  • classify_integrity_error: turn a constraint violation into
    (kind, constraint detail) regardless of the backing dialect.
  • run_batch: best-effort concurrent inserts whose
    results are correlated back to the inputs by a derived key.
"""
import asyncio
import functools
import hashlib
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Hashable, Mapping, Optional, TypeVar

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from socialfeed.config import Settings, settings as default_settings
from socialfeed.errors import InternalError, StoreError
from socialfeed.telemetry import BATCH_FAILURES_TOTAL

logger = logging.getLogger(__name__)

T = TypeVar("T")


class BaseStore:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        cfg: Settings = default_settings,
    ) -> None:
        self._sessions = session_factory
        self.settings = cfg


def _bounded(timeout_of: Callable[[Settings], float]):
    def decorator(func):
        @functools.wraps(func)
        async def wrapper(self: BaseStore, *args, **kwargs):
            timeout = timeout_of(self.settings)
            try:
                return await asyncio.wait_for(func(self, *args, **kwargs), timeout=timeout)
            except StoreError:
                raise
            except asyncio.TimeoutError as exc:
                logger.error("%s exceeded %.1fs", func.__qualname__, timeout)
                raise InternalError(f"{func.__qualname__} timed out") from exc
            except SQLAlchemyError as exc:
                logger.error("%s failed: %s", func.__qualname__, exc)
                raise InternalError(f"{func.__qualname__} failed") from exc

        return wrapper

    return decorator


store_operation = _bounded(lambda cfg: cfg.query_timeout_seconds)
batch_operation = _bounded(lambda cfg: cfg.batch_timeout_seconds)


# ─────────────────────── Constraint violations ────────────────────────────

# MySQL/TiDB, PostgreSQL and SQLite each name the violated key differently.
_CONSTRAINT_PATTERNS = (
    re.compile(r"for key '([^']+)'"),
    re.compile(r"check constraint '([^']+)'", re.IGNORECASE),
    re.compile(r'constraint "([^"]+)"'),
    re.compile(r"constraint failed: ([^\n]+)", re.IGNORECASE),
)


@dataclass(frozen=True)
class IntegrityViolation:
    kind: str    # 'unique' | 'check' | 'foreign_key' | 'not_null' | 'other'
    detail: str  # lower-cased constraint name or column list

    def involves(self, name: str) -> bool:
        return name in self.detail


def classify_integrity_error(exc: IntegrityError) -> IntegrityViolation:
    message = str(exc.orig) if exc.orig is not None else str(exc)
    lowered = message.lower()

    if "unique" in lowered or "duplicate" in lowered:
        kind = "unique"
    elif "check constraint" in lowered:
        kind = "check"
    elif "foreign key" in lowered:
        kind = "foreign_key"
    elif "null" in lowered:
        kind = "not_null"
    else:
        kind = "other"

    detail = lowered
    for pattern in _CONSTRAINT_PATTERNS:
        match = pattern.search(message)
        if match:
            detail = match.group(1).lower()
            break
    return IntegrityViolation(kind=kind, detail=detail)


# ─────────────────────── Batch inserts ────────────────────────────────────

@dataclass
class BatchResult:
    created: int = 0
    failed: list[tuple[Hashable, str]] = field(default_factory=list)
    skipped: list[Hashable] = field(default_factory=list)


def content_key(ordinal: int, *parts: Any) -> str:
    """Stable key for a batch row: digest of its content plus its input position."""
    digest = hashlib.md5("-".join(str(p) for p in parts).encode("utf-8")).hexdigest()
    return f"{digest}:{ordinal}"


def index_by_key(
    items: list[T], key_of: Callable[[int, T], Hashable]
) -> tuple[dict[Hashable, T], list[Hashable]]:
    """Assign every item its key; later items that repeat a key are skipped."""
    index: dict[Hashable, T] = {}
    skipped: list[Hashable] = []
    for ordinal, item in enumerate(items):
        key = key_of(ordinal, item)
        if key in index:
            skipped.append(key)
            continue
        index[key] = item
    return index, skipped


async def run_batch(
    entity: str,
    index: Mapping[Hashable, T],
    insert: Callable[[T], Awaitable[Optional[dict[str, Any]]]],
    apply: Optional[Callable[[T, dict[str, Any]], None]],
    concurrency: int,
    item_timeout: Optional[float] = None,
) -> BatchResult:
    """
    Insert every indexed item as its own task, at most `concurrency` at a time,
    and wait for all of them. Each task reports back under its key, so
    generated fields are written to the matching input object no matter in
    which order the inserts complete. An insert running past `item_timeout`
    is cancelled and reported as failed, freeing its slot.
    """
    semaphore = asyncio.Semaphore(max(1, concurrency))

    async def _insert_one(key: Hashable, item: T):
        async with semaphore:
            try:
                return key, await asyncio.wait_for(insert(item), timeout=item_timeout), None
            except Exception as exc:  # reported per key below
                return key, None, exc

    outcomes = await asyncio.gather(
        *(_insert_one(key, item) for key, item in index.items())
    )

    result = BatchResult()
    for key, generated, error in outcomes:
        if error is not None:
            result.failed.append((key, f"{error.__class__.__name__}: {error}"))
            continue
        if generated and apply is not None:
            apply(index[key], generated)
        result.created += 1

    if result.failed:
        BATCH_FAILURES_TOTAL.labels(entity=entity).inc(len(result.failed))
        logger.warning(
            "Batch insert of %s: %d created, %d failed (first: %s)",
            entity, result.created, len(result.failed), result.failed[0][1],
        )
    else:
        logger.info("Batch insert of %s: %d created", entity, result.created)
    return result
