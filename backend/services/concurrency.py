"""Optimistic read-modify-write of relationship records.

The store has no multi-key transaction: a command reads every record it
needs, the friendship rule computes the new values, and every record read
is written back conditionally on the revision that was read, unchanged ones
included, whenever the rule changed anything. A conflict restarts the whole
cycle from a fresh read.
"""

import logging
from typing import Awaitable, Callable

from tenacity import (
    AsyncRetrying,
    RetryError,
    retry_if_exception_type,
    stop_after_attempt,
    wait_random,
)

import settings
from models.relationships import RecordKey
from services.errors import ConcurrencyExhausted, LockTimeout, WriteConflict
from services.friendship import Changes, Snapshot
from services.locks import KeyedLocks
from services.store import RelationshipStore
from utils.logs import before_sleep_log_concise, ratelimited_log

logger = logging.getLogger("friendgraph.concurrency")

Planner = Callable[[], Awaitable[list[RecordKey]]]
Apply = Callable[[Snapshot], Changes]


class Transactor:
    def __init__(
        self,
        store: RelationshipStore,
        *,
        max_attempts: int | None = None,
        max_wait: float | None = None,
        lock_timeout: float | None = None,
    ):
        self.store = store
        self.locks = KeyedLocks()
        self.max_attempts = max_attempts or settings.MAX_WRITE_ATTEMPTS
        if max_wait is None:
            max_wait = 0 if settings.TESTING_MODE else settings.RETRY_MAX_WAIT_SECONDS
        self.max_wait = max_wait
        self.lock_timeout = lock_timeout or settings.LOCK_TIMEOUT_SECONDS

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            retry=retry_if_exception_type(WriteConflict),
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_random(0, self.max_wait),
            before_sleep=before_sleep_log_concise(logger, logging.DEBUG),
        )

    async def read(self, keys: list[RecordKey]) -> Snapshot:
        """A fresh snapshot, no locking: for the read-only queries"""
        return Snapshot(await self.store.get_many(keys))

    async def run(self, keys: list[RecordKey] | Planner, apply: Apply) -> Changes:
        """Apply a rule to the records in ``keys`` and persist what changed.

        ``keys`` may be a coroutine function, re-evaluated on every attempt,
        for commands whose records depend on the data.
        Rejections raised by the rule propagate untouched.
        """
        try:
            async for attempt in self._retrying():
                with attempt:
                    planned = await keys() if callable(keys) else keys
                    return await self._attempt(planned, apply)
        except RetryError as e:
            conflict = e.last_attempt.exception()
            ratelimited_log(60)(logger.warning, f"Giving up on writes: {conflict}")
            raise ConcurrencyExhausted() from conflict

    async def _attempt(self, keys: list[RecordKey], apply: Apply) -> Changes:
        try:
            async with self.locks.hold(keys, self.lock_timeout):
                snapshot = Snapshot(await self.store.get_many(keys))
                changes = apply(snapshot)
                for key, members in self._commit_writes(keys, snapshot, changes):
                    await self.store.put(
                        key,
                        members,
                        expected_revision=snapshot.revision(key),
                    )
                return changes
        except LockTimeout as e:
            logger.warning(f"Giving up: {e}")
            raise ConcurrencyExhausted() from e

    def _commit_writes(
        self, keys: list[RecordKey], snapshot: Snapshot, changes: Changes
    ) -> list[tuple[RecordKey, frozenset[str]]]:
        """What to put, in key order.

        With conditional writes every record that was read goes back, unchanged
        ones as they were, so a concurrent write to anything the rule looked at
        makes the commit fail. Our locks only cover this process.
        """
        writes = changes.writes
        if not writes or not self.store.conditional_writes:
            return list(writes.items())
        return [
            (key, writes.get(key, snapshot.members(key))) for key in sorted(set(keys))
        ]
