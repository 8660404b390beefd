# this file manages a cache of directory profiles used to enrich the lists
import asyncio
from functools import partial
from typing import Any

from expiringdict import ExpiringDict

import settings
from services.directory import Directory

new_cache = partial(
    ExpiringDict,
    max_len=10_000,
    max_age_seconds=settings.PROFILE_CACHE_SECONDS,
    items={},
)


class ProfileCache:
    def __init__(self, directory: Directory):
        self.directory = directory
        self.user_cache = new_cache()

    async def get_profiles(self, user_ids: list[str]) -> list[dict[str, Any]]:
        """Profiles in the given order, skipping accounts that no longer exist"""
        missing_ids = [
            uid for uid in dict.fromkeys(user_ids) if uid not in self.user_cache
        ]
        if missing_ids:
            profiles = await asyncio.gather(
                *(self.directory.fetch_user(uid) for uid in missing_ids)
            )
            for uid, profile in zip(missing_ids, profiles):
                if profile is not None:
                    self.user_cache[uid] = profile
        found = [self.user_cache.get(uid) for uid in user_ids]
        return [profile for profile in found if profile is not None]

    def forget(self, user_id: str):
        self.user_cache.pop(user_id, None)
