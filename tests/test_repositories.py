"""Job and user repository tests against a mocked Motor database."""
import pytest
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

from database.repositories.job_repo import JobRepository, JobStatus
from database.repositories.user_repo import UserRepository
from shared.utils import get_utc_now


def update_result(modified: int):
    result = MagicMock()
    result.modified_count = modified
    return result


class TestJobRepository:

    @pytest.fixture
    def repo(self, mock_mongo_db):
        return JobRepository(mock_mongo_db)

    @pytest.mark.asyncio
    async def test_create_job_inserts_processing_document(self, repo, mock_mongo_db):
        job = await repo.create_job("user-1", "coffee", skip_without_website=True, max_results=20)

        inserted = mock_mongo_db.extractions.insert_one.await_args.args[0]
        assert inserted is job
        assert job["_id"].startswith("job_")
        assert job["status"] == JobStatus.PROCESSING
        assert job["skip_without_website"] is True
        assert job["max_results"] == 20
        assert job["results"] == []
        assert job["last_checkpoint_index"] == -1
        assert job["started_at"] == job["created_at"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("call", [
        lambda repo: repo.complete_job("job_1", [], 0, 0, 0, 0, "Completed"),
        lambda repo: repo.fail_job("job_1", "boom"),
        lambda repo: repo.append_log("job_1", "hello"),
    ])
    async def test_writes_are_guarded_by_processing_status(self, repo, mock_mongo_db, call):
        mock_mongo_db.extractions.update_one.return_value = update_result(1)

        assert await call(repo) is True

        query = mock_mongo_db.extractions.update_one.await_args.args[0]
        assert query == {"_id": "job_1", "status": JobStatus.PROCESSING}

    @pytest.mark.asyncio
    async def test_late_completion_reports_false(self, repo, mock_mongo_db):
        mock_mongo_db.extractions.update_one.return_value = update_result(0)

        assert await repo.complete_job("job_1", [], 0, 0, 0, 0, "Completed") is False

    @pytest.mark.asyncio
    async def test_complete_job_sets_counters(self, repo, mock_mongo_db):
        mock_mongo_db.extractions.update_one.return_value = update_result(1)

        await repo.complete_job("job_1", [{"name": "A"}], 1, 2, 3, 4, "Completed", debug_artifacts_path="debug/job_1")

        update = mock_mongo_db.extractions.update_one.await_args.args[1]
        assert update["$set"]["status"] == JobStatus.COMPLETED
        assert update["$set"]["total_results"] == 1
        assert update["$set"]["duplicates_skipped"] == 1
        assert update["$set"]["without_phone_skipped"] == 2
        assert update["$set"]["without_website_skipped"] == 3
        assert update["$set"]["failed_places"] == 4
        assert update["$set"]["debug_artifacts_path"] == "debug/job_1"
        assert update["$push"]["logs"].endswith(": Completed")

    @pytest.mark.asyncio
    async def test_fail_job_logs_error_line(self, repo, mock_mongo_db):
        mock_mongo_db.extractions.update_one.return_value = update_result(1)

        await repo.fail_job("job_1", "Failed to scrape Google Maps: boom")

        update = mock_mongo_db.extractions.update_one.await_args.args[1]
        assert update["$set"]["status"] == JobStatus.FAILED
        assert update["$set"]["error_message"] == "Failed to scrape Google Maps: boom"
        assert update["$push"]["logs"].endswith(": ERROR - Failed to scrape Google Maps: boom")

    @pytest.mark.asyncio
    async def test_cancel_job_is_scoped_to_owner(self, repo, mock_mongo_db):
        mock_mongo_db.extractions.update_one.return_value = update_result(1)

        assert await repo.cancel_job("job_1", "user-1") is True

        query = mock_mongo_db.extractions.update_one.await_args.args[0]
        assert query == {"_id": "job_1", "user_id": "user-1", "status": JobStatus.PROCESSING}

    @pytest.mark.asyncio
    async def test_get_status(self, repo, mock_mongo_db):
        mock_mongo_db.extractions.find_one.return_value = {"_id": "job_1", "status": "cancelled"}
        assert await repo.get_status("job_1") == "cancelled"

        mock_mongo_db.extractions.find_one.return_value = None
        assert await repo.get_status("job_1") is None

    @pytest.mark.asyncio
    async def test_history_omits_results(self, repo, mock_mongo_db):
        cursor = MagicMock()
        cursor.sort.return_value = cursor
        cursor.limit.return_value = cursor
        cursor.to_list = AsyncMock(return_value=[{"_id": "job_1"}])
        mock_mongo_db.extractions.find.return_value = cursor

        jobs = await repo.list_user_jobs("user-1", limit=5)

        assert jobs == [{"_id": "job_1"}]
        mock_mongo_db.extractions.find.assert_called_once_with({"user_id": "user-1"}, {"results": 0})
        cursor.sort.assert_called_once_with("created_at", -1)
        cursor.limit.assert_called_once_with(5)


class TestUserRepository:

    @pytest.fixture
    def repo(self, mock_mongo_db):
        return UserRepository(mock_mongo_db, default_daily_quota=5)

    def user(self, used: int, reset_in=timedelta(hours=6)):
        return {
            "_id": "user-1",
            "daily_quota": 5,
            "used_quota_today": used,
            "quota_reset_date": get_utc_now() + reset_in
        }

    @pytest.mark.asyncio
    async def test_new_user_gets_default_quota(self, repo, mock_mongo_db):
        mock_mongo_db.users.find_one_and_update.return_value = self.user(0)

        await repo.get_or_create_user("user-1")

        args, kwargs = mock_mongo_db.users.find_one_and_update.await_args
        assert args[0] == {"_id": "user-1"}
        assert args[1]["$setOnInsert"]["daily_quota"] == 5
        assert kwargs["upsert"] is True

    @pytest.mark.asyncio
    async def test_quota_remaining(self, repo, mock_mongo_db):
        mock_mongo_db.users.find_one_and_update.return_value = self.user(4)
        assert await repo.has_quota_remaining("user-1") is True

        mock_mongo_db.users.find_one_and_update.return_value = self.user(5)
        assert await repo.has_quota_remaining("user-1") is False

    @pytest.mark.asyncio
    async def test_expired_window_resets_usage(self, repo, mock_mongo_db):
        mock_mongo_db.users.find_one_and_update.return_value = self.user(5, reset_in=timedelta(hours=-1))

        assert await repo.has_quota_remaining("user-1") is True

        query, update = mock_mongo_db.users.update_one.await_args.args
        assert query == {"_id": "user-1"}
        assert update["$set"]["used_quota_today"] == 0

    @pytest.mark.asyncio
    async def test_refund_never_goes_negative(self, repo, mock_mongo_db):
        mock_mongo_db.users.update_one.return_value = update_result(0)

        assert await repo.refund_quota("user-1") is False

        query = mock_mongo_db.users.update_one.await_args.args[0]
        assert query == {"_id": "user-1", "used_quota_today": {"$gt": 0}}

    @pytest.mark.asyncio
    async def test_quota_summary(self, repo, mock_mongo_db):
        user = self.user(2)
        mock_mongo_db.users.find_one_and_update.return_value = user

        summary = await repo.get_quota_summary("user-1")

        assert summary == {
            "daily_quota": 5,
            "used_today": 2,
            "remaining": 3,
            "reset_date": user["quota_reset_date"]
        }
