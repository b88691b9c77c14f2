"""User repository holding the daily extraction quota."""
from datetime import timedelta
from typing import Optional, Dict, Any
from motor.motor_asyncio import AsyncIOMotorDatabase
from shared.config import settings
from shared.utils import get_utc_now

QUOTA_WINDOW = timedelta(days=1)


class UserRepository:
    """Quota accounting on the users collection.

    Users are identified by the id the caller authenticates with. A user
    seen for the first time gets a document with the default quota.
    """

    def __init__(self, db: AsyncIOMotorDatabase, default_daily_quota: int = None):
        self.collection = db.users
        self.default_daily_quota = default_daily_quota or settings.default_daily_quota

    async def get_or_create_user(self, user_id: str) -> Dict[str, Any]:
        """Return the user's quota document, creating it on first use."""
        now = get_utc_now()
        user = await self.collection.find_one_and_update(
            {"_id": user_id},
            {
                "$setOnInsert": {
                    "daily_quota": self.default_daily_quota,
                    "used_quota_today": 0,
                    "quota_reset_date": now + QUOTA_WINDOW,
                    "created_at": now
                }
            },
            upsert=True,
            return_document=True
        )
        return await self._reset_if_expired(user)

    async def _reset_if_expired(self, user: Dict[str, Any]) -> Dict[str, Any]:
        """Start a new quota window once the previous one has passed."""
        now = get_utc_now()
        reset_date = user.get("quota_reset_date")
        if reset_date is not None and reset_date.tzinfo is None:
            reset_date = reset_date.replace(tzinfo=now.tzinfo)

        if reset_date is None or now > reset_date:
            user["used_quota_today"] = 0
            user["quota_reset_date"] = now + QUOTA_WINDOW
            await self.collection.update_one(
                {"_id": user["_id"]},
                {"$set": {"used_quota_today": 0, "quota_reset_date": user["quota_reset_date"]}}
            )
        return user

    async def has_quota_remaining(self, user_id: str) -> bool:
        """Check whether the user may start another extraction today."""
        user = await self.get_or_create_user(user_id)
        return user["used_quota_today"] < user["daily_quota"]

    async def update_quota(self, user_id: str) -> Optional[Dict[str, Any]]:
        """Count one extraction against today's quota."""
        await self.get_or_create_user(user_id)
        return await self.collection.find_one_and_update(
            {"_id": user_id},
            {"$inc": {"used_quota_today": 1}},
            return_document=True
        )

    async def refund_quota(self, user_id: str) -> bool:
        """Give one extraction back, e.g. when it failed without results."""
        result = await self.collection.update_one(
            {"_id": user_id, "used_quota_today": {"$gt": 0}},
            {"$inc": {"used_quota_today": -1}}
        )
        return result.modified_count > 0

    async def get_quota_summary(self, user_id: str) -> Dict[str, Any]:
        """Daily quota, usage and reset date for the user."""
        user = await self.get_or_create_user(user_id)
        return {
            "daily_quota": user["daily_quota"],
            "used_today": user["used_quota_today"],
            "remaining": max(0, user["daily_quota"] - user["used_quota_today"]),
            "reset_date": user["quota_reset_date"]
        }
