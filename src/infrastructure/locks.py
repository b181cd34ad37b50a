"""
Redis-based distributed lock used to claim a sweep job slot.

Only one runner per job type may execute at a time across API processes
and the in-process sweeper loop.  A run that cannot claim the slot is
skipped before it opens a Job Ledger record, so overlapping triggers never
double-log affected rows.

Implementation uses SET NX EX for acquire and a Lua script for atomic
check-and-delete on release.
"""

from __future__ import annotations

import uuid

import redis.asyncio as aioredis

_RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
else
    return 0
end
"""


class DistributedLock:
    def __init__(
        self, client: aioredis.Redis, key: str, ttl_seconds: int = 120
    ):
        self.redis = client
        self.key = f"lock:{key}"
        self.ttl = ttl_seconds
        self.token = str(uuid.uuid4())
        self.acquired = False

    async def acquire(self) -> bool:
        """Try to claim the slot. Returns True on success."""
        self.acquired = bool(
            await self.redis.set(self.key, self.token, nx=True, ex=self.ttl)
        )
        return self.acquired

    async def release(self) -> None:
        """Release only if we still own the slot (atomic via Lua)."""
        if not self.acquired:
            return
        await self.redis.eval(_RELEASE_SCRIPT, 1, self.key, self.token)
        self.acquired = False


def job_lock(client: aioredis.Redis, job_type: str, ttl_seconds: int) -> DistributedLock:
    return DistributedLock(client, f"jobs:{job_type}", ttl_seconds=ttl_seconds)
