"""
Session-scoped cache of the database membership lookup.

Entries are keyed by the provider session id and remember the subject they
were computed for. Reading an entry written for a different subject means the
identity behind the session changed, so the entry is dropped and treated as a
miss. Only definitive lookups are stored; pending and failed lookups always
go back to the database.

The stored expiry matches the maximum session lifetime and only bounds Redis
memory; entries are otherwise invalidated explicitly. Invalidation never raises:
a Redis failure is logged and reported as a False return.
"""

from __future__ import annotations

import json
from typing import Optional

import redis.asyncio as redis
import structlog
from pydantic import ValidationError

from tcgshop_shared.schemas.membership import LookupStatus, MembershipLookup

log = structlog.get_logger()

KEY_PREFIX = "membership:lookup:"
SUBJECT_PREFIX = "membership:sessions:"


class MembershipLookupCache:
    def __init__(self, client: redis.Redis, max_age_seconds: int):
        self._redis = client
        self._max_age = max_age_seconds

    @staticmethod
    def _key(session_id: str) -> str:
        return f"{KEY_PREFIX}{session_id}"

    async def get(self, session_id: str, subject: str) -> Optional[MembershipLookup]:
        raw = await self._redis.get(self._key(session_id))
        if raw is None:
            return None
        entry = json.loads(raw)
        if entry.get("subject") != subject:
            log.info("membership_cache.identity_changed", session_id=session_id)
            await self.invalidate(session_id)
            return None
        try:
            return MembershipLookup.model_validate(entry.get("lookup"))
        except ValidationError:
            log.warning("membership_cache.invalid_entry", session_id=session_id)
            await self.invalidate(session_id)
            return None

    async def set(self, session_id: str, subject: str, lookup: MembershipLookup) -> None:
        if lookup.status != LookupStatus.OK:
            return
        entry = {"subject": subject, "lookup": lookup.model_dump(mode="json")}
        await self._redis.setex(self._key(session_id), self._max_age, json.dumps(entry))
        index = f"{SUBJECT_PREFIX}{subject}"
        await self._redis.sadd(index, session_id)
        await self._redis.expire(index, self._max_age)

    async def invalidate(self, session_id: str) -> bool:
        """Drop one session entry. Returns False when Redis could not be reached."""
        try:
            await self._redis.delete(self._key(session_id))
        except redis.RedisError as exc:
            log.warning("membership_cache.invalidate_failed", session_id=session_id, error=str(exc))
            return False
        log.debug("membership_cache.invalidated", session_id=session_id)
        return True

    async def invalidate_subject(self, subject: str) -> bool:
        """Drop every session entry of one identity (after its membership changed)."""
        index = f"{SUBJECT_PREFIX}{subject}"
        try:
            session_ids = await self._redis.smembers(index)
            keys = [self._key(session_id) for session_id in session_ids]
            await self._redis.delete(index, *keys)
        except redis.RedisError as exc:
            log.warning("membership_cache.invalidate_failed", subject=subject, error=str(exc))
            return False
        log.debug("membership_cache.subject_invalidated", subject=subject, sessions=len(keys))
        return True
