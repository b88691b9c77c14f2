"""Extraction orchestrator: job state machine around the scrape pipeline.

The orchestrator is the only writer of extraction job records. A submitted
job runs as a detached asyncio task; the pipeline inside it reports through
an event queue that a single relay coroutine drains in order, so log lines,
checkpoints and progress broadcasts for a job are applied exactly in the
order they were emitted.
"""
import asyncio
import logging
from typing import Any, Dict, List, NamedTuple, Optional, Set

from api.schemas.requests import StartExtractionRequest
from api.services.exporter import CsvExporter, export_filename
from api.services.publisher import PublisherService
from consumer.events import CheckpointEvent, LogEvent, PipelineEvent, ProgressEvent
from consumer.filtering import FilterPolicy
from consumer.scraper import PlaceScraper, ScrapeOutcome, ScrapeRequest
from database.checkpoint_store import CheckpointStore
from database.repositories.job_repo import JobRepository, JobStatus
from database.repositories.user_repo import UserRepository
from shared.config import Settings, settings
from shared.errors import BadRequestError

logger = logging.getLogger(__name__)


class ExportFile(NamedTuple):
    filename: str
    content: bytes


class ExtractionOrchestrator:
    """Owns extraction jobs from submission to their terminal status."""

    def __init__(
        self,
        job_repo: JobRepository,
        quota: UserRepository,
        publisher: PublisherService,
        checkpoints: CheckpointStore,
        scraper: PlaceScraper,
        exporter: CsvExporter = None,
        config: Settings = None
    ):
        self.job_repo = job_repo
        self.quota = quota
        self.publisher = publisher
        self.checkpoints = checkpoints
        self.scraper = scraper
        self.exporter = exporter or CsvExporter()
        self.config = config or settings
        self._tasks: Set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Request path
    # ------------------------------------------------------------------

    async def submit(self, user_id: str, request: StartExtractionRequest) -> Dict[str, Any]:
        """
        Start an extraction.

        Checks quota, creates the job as processing, schedules the
        background run and commits the quota usage. Returns immediately.
        """
        if not await self.quota.has_quota_remaining(user_id):
            raise BadRequestError("Daily extraction quota exceeded")

        job = await self.job_repo.create_job(
            user_id=user_id,
            keyword=request.keyword,
            skip_duplicates=request.skip_duplicates,
            skip_without_phone=request.skip_without_phone,
            skip_without_website=request.skip_without_website,
            max_results=request.max_results
        )

        self._launch(job)
        await self.quota.update_quota(user_id)

        logger.info(f"Extraction {job['_id']} started for keyword: {request.keyword}")
        return job

    async def get(self, job_id: str, user_id: str) -> Dict[str, Any]:
        """Get one of the user's extractions."""
        job = await self.job_repo.get_user_job(job_id, user_id)
        if not job:
            raise BadRequestError("Extraction not found")
        return job

    async def history(self, user_id: str, limit: int = 20) -> List[Dict[str, Any]]:
        """The user's recent extractions, without results."""
        return await self.job_repo.list_user_jobs(user_id, limit)

    async def quota_summary(self, user_id: str) -> Dict[str, Any]:
        return await self.quota.get_quota_summary(user_id)

    async def cancel(self, job_id: str, user_id: str) -> None:
        """
        Cancel a processing extraction.

        The running pipeline is not interrupted; it notices the status
        change between places and stops, and its late result is ignored.
        """
        job = await self.get(job_id, user_id)

        if job["status"] != JobStatus.PROCESSING:
            raise BadRequestError("Extraction already completed")

        if not await self.job_repo.cancel_job(job_id, user_id):
            # Finished between the read and the conditional write
            raise BadRequestError("Extraction already completed")

        logger.info(f"Extraction {job_id} cancelled by user")
        await self.publisher.emit_progress(
            job_id, JobStatus.CANCELLED, message="Extraction cancelled by user"
        )

    async def delete(self, job_id: str, user_id: str) -> None:
        """Delete an extraction and its checkpoint, whatever its status."""
        if not await self.job_repo.delete_job(job_id, user_id):
            raise BadRequestError("Extraction not found")
        await self.checkpoints.delete(job_id)
        logger.info(f"Extraction {job_id} deleted")

    async def export(self, job_id: str, user_id: str) -> ExportFile:
        """Render a completed extraction's results as CSV."""
        job = await self.get(job_id, user_id)

        if job["status"] != JobStatus.COMPLETED:
            raise BadRequestError("Extraction is not completed yet")

        if not job.get("results"):
            raise BadRequestError("No results to export")

        return ExportFile(
            filename=export_filename(job["keyword"]),
            content=self.exporter.render(job["results"])
        )

    # ------------------------------------------------------------------
    # Background execution
    # ------------------------------------------------------------------

    def _launch(self, job: Dict[str, Any]) -> asyncio.Task:
        task = asyncio.create_task(self._run_extraction(job), name=f"extraction-{job['_id']}")
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)
        return task

    def _on_task_done(self, task: asyncio.Task):
        self._tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"Task {task.get_name()} crashed: {error}", exc_info=error)

    async def _is_stopped(self, job_id: str) -> bool:
        return await self.job_repo.get_status(job_id) != JobStatus.PROCESSING

    async def _run_extraction(self, job: Dict[str, Any]):
        """Run the pipeline for a job and record its terminal status."""
        job_id = job["_id"]
        request = ScrapeRequest(
            job_id=job_id,
            keyword=job["keyword"],
            max_results=job["max_results"],
            policy=FilterPolicy(
                skip_duplicates=job["skip_duplicates"],
                skip_without_phone=job["skip_without_phone"],
                skip_without_website=job["skip_without_website"]
            )
        )

        channel: asyncio.Queue = asyncio.Queue()
        relay = asyncio.create_task(self._relay_events(job_id, channel))

        try:
            checkpoint = None
            if self.config.resume_from_checkpoint:
                checkpoint = await self.checkpoints.load(job_id)

            outcome = await self.scraper.run(
                request,
                emit=channel.put_nowait,
                checkpoint=checkpoint,
                should_stop=lambda: self._is_stopped(job_id)
            )
        except asyncio.CancelledError:
            relay.cancel()
            raise
        except Exception as e:
            await self._close_channel(channel, relay)
            await self._finish_failure(job, e)
            return

        await self._close_channel(channel, relay)
        try:
            await self._finish_success(job, outcome)
        except Exception as e:
            logger.error(f"Failed to record completion of extraction {job_id}: {e}")
            await self._finish_failure(job, e)

    async def _close_channel(self, channel: asyncio.Queue, relay: asyncio.Task):
        """Let the relay apply everything already emitted, then stop it."""
        channel.put_nowait(None)
        await relay

    async def _relay_events(self, job_id: str, channel: asyncio.Queue):
        while True:
            event = await channel.get()
            if event is None:
                break
            try:
                await self._apply_event(job_id, event)
            except Exception as e:
                logger.warning(f"Failed to apply {type(event).__name__} for extraction {job_id}: {e}")

    async def _apply_event(self, job_id: str, event: PipelineEvent):
        if isinstance(event, LogEvent):
            if await self.job_repo.append_log(job_id, event.message):
                await self.publisher.emit_progress(job_id, JobStatus.PROCESSING, message=event.message)

        elif isinstance(event, CheckpointEvent):
            if not await self._is_stopped(job_id):
                await self.checkpoints.save(event.checkpoint)

        elif isinstance(event, ProgressEvent):
            if not await self._is_stopped(job_id):
                await self.publisher.emit_progress(
                    job_id,
                    JobStatus.PROCESSING,
                    percentage=event.percentage,
                    current_index=event.current_index,
                    total_results=event.extracted,
                    message=event.message
                )

    async def _finish_success(self, job: Dict[str, Any], outcome: ScrapeOutcome):
        job_id = job["_id"]
        debug_path = ""
        if outcome.failed_places:
            debug_path = str(self.scraper.debug_sink.get_debug_path(job_id))

        written = await self.job_repo.complete_job(
            job_id,
            results=[record.model_dump() for record in outcome.results],
            duplicates_skipped=outcome.duplicates_skipped,
            without_phone_skipped=outcome.without_phone_skipped,
            without_website_skipped=outcome.without_website_skipped,
            failed_places=outcome.failed_places,
            message=(
                f"Completed: {outcome.total_results} results, "
                f"{outcome.duplicates_skipped} duplicates, "
                f"{outcome.without_phone_skipped} without phone, "
                f"{outcome.without_website_skipped} without website, "
                f"{outcome.failed_places} failed"
            ),
            debug_artifacts_path=debug_path
        )
        await self.checkpoints.delete(job_id)

        if not written:
            logger.info(f"Extraction {job_id} finished after it was stopped; result discarded")
            return

        logger.info(f"Extraction {job_id} completed successfully")
        await self.publisher.emit_complete(job_id, JobStatus.COMPLETED, outcome.total_results)

    async def _finish_failure(self, job: Dict[str, Any], error: Exception):
        job_id = job["_id"]
        message = str(error) or type(error).__name__
        logger.error(f"Extraction {job_id} failed: {message}")

        # The checkpoint is kept so a later run can resume
        try:
            if not await self.job_repo.fail_job(job_id, message):
                await self._discard_failure(job_id)
                return

            await self.publisher.emit_error(job_id, message)

            if self.config.refund_failed_extractions:
                await self.quota.refund_quota(job["user_id"])
        except Exception as e:
            logger.error(f"Failed to record failure of extraction {job_id}: {e}", exc_info=e)

    async def _discard_failure(self, job_id: str):
        logger.info(f"Extraction {job_id} failed after it was stopped; error discarded")
        # A relayed checkpoint can land after delete() removed the job
        if await self.job_repo.get_status(job_id) is None:
            await self.checkpoints.delete(job_id)

    # ------------------------------------------------------------------
    # Process lifecycle
    # ------------------------------------------------------------------

    async def recover_interrupted(self) -> int:
        """
        Relaunch jobs left processing by a previous process.

        Their pipeline resumes from the last checkpoint, if any.
        """
        if not self.config.resume_interrupted_jobs:
            return 0

        running = {task.get_name() for task in self._tasks}
        jobs = await self.job_repo.list_jobs_by_status(JobStatus.PROCESSING)
        recovered = 0

        for job in jobs:
            if f"extraction-{job['_id']}" in running:
                continue
            await self.job_repo.append_log(job["_id"], "Resuming after service restart")
            self._launch(job)
            recovered += 1

        if recovered:
            logger.info(f"Recovered {recovered} interrupted extraction(s)")
        return recovered

    @property
    def active_count(self) -> int:
        return len(self._tasks)

    async def wait_for_tasks(self, timeout: Optional[float] = None):
        """Wait until every background extraction has finished."""
        while self._tasks:
            await asyncio.wait(list(self._tasks), timeout=timeout)
            if timeout is not None:
                break

    async def shutdown(self):
        """Cancel background extractions. Their jobs stay processing."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
