"""File-backed checkpoint store, one JSON document per job."""
import asyncio
import logging
import os
import tempfile
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from api.models.checkpoint import Checkpoint
from database.repositories.job_repo import JobRepository
from shared.config import Settings, settings

logger = logging.getLogger(__name__)


class CheckpointStore:
    """
    Durable job progress snapshots stored as ``<checkpoint_dir>/<job_id>.json``.

    Saving never raises: a missed checkpoint only costs resumability.
    Every operation is a no-op when checkpoints are disabled.
    """

    def __init__(self, job_repo: Optional[JobRepository] = None, config: Settings = None):
        config = config or settings
        self.enabled = config.checkpoint_enabled
        self.directory = Path(config.checkpoint_dir)
        self.job_repo = job_repo

    def _path(self, job_id: str) -> Path:
        return self.directory / f"{Path(job_id).name}.json"

    def _write(self, checkpoint: Checkpoint):
        self.directory.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=self.directory, prefix=f".{checkpoint.job_id}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(checkpoint.model_dump_json())
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_path, self._path(checkpoint.job_id))
        except BaseException:
            Path(tmp_path).unlink(missing_ok=True)
            raise

    async def save(self, checkpoint: Checkpoint) -> bool:
        """Persist a checkpoint, replacing the previous one for the job."""
        if not self.enabled:
            return False

        try:
            await asyncio.to_thread(self._write, checkpoint)
            if self.job_repo is not None:
                await self.job_repo.record_checkpoint(
                    checkpoint.job_id,
                    checkpoint.last_processed_index,
                    checkpoint.timestamp
                )
        except Exception as e:
            logger.error(f"Failed to save checkpoint for job {checkpoint.job_id}: {e}")
            return False

        logger.debug(
            f"Saved checkpoint for job {checkpoint.job_id} at index {checkpoint.last_processed_index}"
        )
        return True

    async def load(self, job_id: str) -> Optional[Checkpoint]:
        """
        Load the job's checkpoint.

        Returns None when there is none (or it is unreadable garbage);
        other I/O errors are logged and raised.
        """
        if not self.enabled:
            return None

        try:
            raw = await asyncio.to_thread(self._path(job_id).read_text, encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as e:
            logger.error(f"Failed to read checkpoint for job {job_id}: {e}")
            raise

        try:
            checkpoint = Checkpoint.model_validate_json(raw)
        except ValidationError as e:
            logger.error(f"Discarding corrupt checkpoint for job {job_id}: {e}")
            return None

        logger.info(
            f"Loaded checkpoint for job {job_id}: {checkpoint.total_processed} places processed"
        )
        return checkpoint

    async def delete(self, job_id: str) -> bool:
        """Remove the job's checkpoint. Deleting a missing checkpoint is fine."""
        if not self.enabled:
            return False

        path = self._path(job_id)
        try:
            existed = await asyncio.to_thread(path.exists)
            await asyncio.to_thread(path.unlink, missing_ok=True)
        except OSError as e:
            logger.error(f"Failed to delete checkpoint for job {job_id}: {e}")
            return False
        return existed

    async def exists(self, job_id: str) -> bool:
        if not self.enabled:
            return False
        return await asyncio.to_thread(self._path(job_id).exists)
