"""Job repository for CRUD operations on the extractions collection.

Terminal writes (complete/fail/cancel) are conditional updates filtered on
``status == processing``. Whichever write lands first wins; a later one
matches nothing and reports False. Log appends use the same guard so a
finished job's log stays frozen.
"""
from typing import Optional, List, Dict, Any
from datetime import datetime
from motor.motor_asyncio import AsyncIOMotorDatabase
from shared.utils import generate_job_id, get_utc_now, timestamped


class JobStatus:
    """Job status constants."""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class JobRepository:
    """Repository for extraction job CRUD operations."""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.collection = db.extractions

    async def create_job(
        self,
        user_id: str,
        keyword: str,
        skip_duplicates: bool = True,
        skip_without_phone: bool = True,
        skip_without_website: bool = False,
        max_results: int = 50
    ) -> Dict[str, Any]:
        """Create a new job record, already processing."""
        job_id = generate_job_id()
        now = get_utc_now()

        job = {
            "_id": job_id,
            "user_id": user_id,
            "keyword": keyword,
            "status": JobStatus.PROCESSING,
            "skip_duplicates": skip_duplicates,
            "skip_without_phone": skip_without_phone,
            "skip_without_website": skip_without_website,
            "max_results": max_results,
            "results": [],
            "total_results": 0,
            "duplicates_skipped": 0,
            "without_phone_skipped": 0,
            "without_website_skipped": 0,
            "failed_places": 0,
            "logs": [],
            "error_message": "",
            "last_checkpoint_index": -1,
            "checkpoint_saved_at": None,
            "debug_artifacts_path": "",
            "started_at": now,
            "completed_at": None,
            "created_at": now,
            "updated_at": now
        }

        await self.collection.insert_one(job)
        return job

    async def get_job(self, job_id: str) -> Optional[Dict[str, Any]]:
        """Get a job by ID."""
        return await self.collection.find_one({"_id": job_id})

    async def get_user_job(self, job_id: str, user_id: str) -> Optional[Dict[str, Any]]:
        """Get a job by ID if it belongs to the user."""
        return await self.collection.find_one({"_id": job_id, "user_id": user_id})

    async def get_status(self, job_id: str) -> Optional[str]:
        """Current status of a job, or None if it does not exist."""
        job = await self.collection.find_one({"_id": job_id}, {"status": 1})
        return job["status"] if job else None

    async def append_log(self, job_id: str, message: str) -> bool:
        """Append a timestamped log line while the job is processing."""
        result = await self.collection.update_one(
            {"_id": job_id, "status": JobStatus.PROCESSING},
            {
                "$push": {"logs": timestamped(message)},
                "$set": {"updated_at": get_utc_now()}
            }
        )
        return result.modified_count > 0

    async def record_checkpoint(self, job_id: str, index: int, saved_at: datetime) -> bool:
        """Store the last checkpoint pointer on the job."""
        result = await self.collection.update_one(
            {"_id": job_id},
            {
                "$set": {
                    "last_checkpoint_index": index,
                    "checkpoint_saved_at": saved_at,
                    "updated_at": get_utc_now()
                }
            }
        )
        return result.modified_count > 0

    async def complete_job(
        self,
        job_id: str,
        results: List[Dict[str, Any]],
        duplicates_skipped: int,
        without_phone_skipped: int,
        without_website_skipped: int,
        failed_places: int,
        message: str,
        debug_artifacts_path: str = ""
    ) -> bool:
        """Mark a processing job as completed with its results."""
        now = get_utc_now()
        result = await self.collection.update_one(
            {"_id": job_id, "status": JobStatus.PROCESSING},
            {
                "$set": {
                    "status": JobStatus.COMPLETED,
                    "results": results,
                    "total_results": len(results),
                    "duplicates_skipped": duplicates_skipped,
                    "without_phone_skipped": without_phone_skipped,
                    "without_website_skipped": without_website_skipped,
                    "failed_places": failed_places,
                    "debug_artifacts_path": debug_artifacts_path,
                    "updated_at": now,
                    "completed_at": now
                },
                "$push": {"logs": timestamped(message)}
            }
        )
        return result.modified_count > 0

    async def fail_job(self, job_id: str, error_message: str) -> bool:
        """Mark a processing job as failed."""
        now = get_utc_now()
        result = await self.collection.update_one(
            {"_id": job_id, "status": JobStatus.PROCESSING},
            {
                "$set": {
                    "status": JobStatus.FAILED,
                    "error_message": error_message,
                    "updated_at": now,
                    "completed_at": now
                },
                "$push": {"logs": timestamped(f"ERROR - {error_message}")}
            }
        )
        return result.modified_count > 0

    async def cancel_job(self, job_id: str, user_id: str) -> bool:
        """Cancel a job if it's still processing."""
        now = get_utc_now()
        result = await self.collection.update_one(
            {
                "_id": job_id,
                "user_id": user_id,
                "status": JobStatus.PROCESSING
            },
            {
                "$set": {
                    "status": JobStatus.CANCELLED,
                    "updated_at": now,
                    "completed_at": now
                },
                "$push": {"logs": timestamped("Extraction cancelled by user")}
            }
        )
        return result.modified_count > 0

    async def delete_job(self, job_id: str, user_id: str) -> bool:
        """Delete a job regardless of its status."""
        result = await self.collection.delete_one({"_id": job_id, "user_id": user_id})
        return result.deleted_count > 0

    async def list_user_jobs(self, user_id: str, limit: int = 20) -> List[Dict[str, Any]]:
        """List a user's jobs, newest first, without the results array."""
        cursor = (
            self.collection.find({"user_id": user_id}, {"results": 0})
            .sort("created_at", -1)
            .limit(limit)
        )
        return await cursor.to_list(length=limit)

    async def list_jobs_by_status(self, status: str, limit: int = 100) -> List[Dict[str, Any]]:
        """List jobs with a given status, oldest first."""
        cursor = self.collection.find({"status": status}).sort("created_at", 1).limit(limit)
        return await cursor.to_list(length=limit)
