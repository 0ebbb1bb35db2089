"""
Cookie store backed by the `cookies` collection.

Resolves a user's Halo session and marks it invalidated when Halo rejects it.
Cookies are refreshed by another process, so cached entries expire and an
invalidation only applies to the token that was actually rejected.
"""

import time
from datetime import datetime, timezone
from typing import Callable, Dict, Optional, Tuple

import structlog
from motor.motor_asyncio import AsyncIOMotorDatabase

from watcher.models import Credential, is_valid_credential

logger = structlog.get_logger(__name__)

COOKIES = "cookies"


class CookieStore:
    """Credential resolver and invalidation sink over MongoDB."""

    def __init__(
        self,
        database: AsyncIOMotorDatabase,
        cache_ttl_seconds: float = 60,
        clock: Callable[[], float] = time.monotonic
    ):
        """
        Initialize cookie store.

        Args:
            database: Database holding the `cookies` collection
            cache_ttl_seconds: How long a resolved cookie is served from memory
            clock: Monotonic time source
        """
        self.collection = database[COOKIES]
        self.cache_ttl_seconds = cache_ttl_seconds
        self.clock = clock
        self.logger = logger.bind(component="cookie_store")
        self._cache: Dict[str, Tuple[Credential, float]] = {}
        # Last authorization token handed out per user
        self._issued: Dict[str, str] = {}

    def _cached(self, user_id: str) -> Optional[Credential]:
        entry = self._cache.get(user_id)
        if entry is None:
            return None
        credential, resolved_at = entry
        if self.clock() - resolved_at > self.cache_ttl_seconds:
            del self._cache[user_id]
            return None
        return credential

    async def cookie_for(self, user_id: str) -> Optional[Credential]:
        """
        Get the credential for a user.

        Args:
            user_id: User id

        Returns:
            Optional[Credential]: A usable credential, or None when the cookie is
            missing, incomplete or was invalidated
        """
        credential = self._cached(user_id)
        if credential is not None:
            return credential

        doc = await self.collection.find_one({"_id": user_id})
        if not doc or doc.get("invalidated_at"):
            return None

        authorization = doc.get("authorization_token")
        context = doc.get("context_token")
        if not isinstance(authorization, str) or not isinstance(context, str):
            self.logger.warning("Malformed cookie document", user_id=user_id)
            return None

        credential = Credential(user_id=user_id, authorization_token=authorization, context_token=context)
        if not is_valid_credential(credential):
            return None

        self._cache[user_id] = (credential, self.clock())
        self._issued[user_id] = authorization
        return credential

    async def report(self, user_id: str, reason: str) -> None:
        """
        Mark a user's cookie as rejected by Halo.

        Only the document still holding the rejected token is marked, so a
        cookie refreshed in the meantime stays usable.

        Args:
            user_id: User id
            reason: Human readable reason, stored with the cookie
        """
        self._cache.pop(user_id, None)
        rejected_token = self._issued.pop(user_id, None)
        if rejected_token is None:
            self.logger.warning("Rejected cookie was not issued by this store", user_id=user_id)
            return

        result = await self.collection.update_one(
            {"_id": user_id, "authorization_token": rejected_token},
            {"$set": {"invalidated_at": datetime.now(timezone.utc), "invalid_reason": reason}}
        )
        if result.modified_count:
            self.logger.warning("Cookie invalidated", user_id=user_id, reason=reason)
        else:
            self.logger.info("Cookie already refreshed, not invalidated", user_id=user_id)
