"""Best-effort diagnostic artifacts for places that failed to extract.

Artifacts go to ``<debug_base_path>/<job_id>/`` in three folders:
``screenshots``, ``html-dumps`` and ``error-logs``. Nothing in here
raises: a broken sink must never affect the extraction it is observing.
"""
import asyncio
import json
import logging
import shutil
import time
import traceback
from pathlib import Path
from typing import Any, Dict, Optional

from shared.config import Settings, settings
from shared.utils import get_utc_now

logger = logging.getLogger(__name__)

SCREENSHOTS = "screenshots"
HTML_DUMPS = "html-dumps"
ERROR_LOGS = "error-logs"


def _write_text(path: Path, content: str):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


class DebugArtifactSink:
    """Writes screenshots, HTML dumps and error logs for failed items."""

    def __init__(self, config: Settings = None):
        config = config or settings
        self.base_path = Path(config.debug_base_path)
        self.retention_days = config.debug_retention_days
        self.save_screenshots = config.save_screenshots
        self.save_html_dumps = config.save_html_dumps

    def get_debug_path(self, job_id: str) -> Path:
        return self.base_path / job_id

    def _artifact_path(self, job_id: str, folder: str, context: str, index: Optional[int], ext: str) -> Path:
        index_part = f"-place-{index}" if index is not None else ""
        filename = f"{context}{index_part}-{int(time.time() * 1000)}.{ext}"
        return self.get_debug_path(job_id) / folder / filename

    async def save_screenshot(self, page, job_id: str, context: str, index: Optional[int] = None) -> Optional[str]:
        """Save a full-page screenshot. Returns the path or None."""
        if not self.save_screenshots:
            return None
        path = self._artifact_path(job_id, SCREENSHOTS, context, index, "png")
        try:
            await asyncio.to_thread(path.parent.mkdir, parents=True, exist_ok=True)
            await page.screenshot(path=str(path), full_page=True)
            logger.debug(f"Saved screenshot: {path.name}")
            return str(path)
        except Exception as e:
            logger.warning(f"Failed to save screenshot: {e}")
            return None

    async def save_html_dump(self, page, job_id: str, context: str, index: Optional[int] = None) -> Optional[str]:
        """Save the current page markup. Returns the path or None."""
        if not self.save_html_dumps:
            return None
        path = self._artifact_path(job_id, HTML_DUMPS, context, index, "html")
        try:
            html = await page.content()
            await asyncio.to_thread(_write_text, path, html)
            logger.debug(f"Saved HTML dump: {path.name}")
            return str(path)
        except Exception as e:
            logger.warning(f"Failed to save HTML dump: {e}")
            return None

    async def save_error_log(
        self,
        job_id: str,
        error: BaseException,
        operation: str,
        index: Optional[int] = None,
        place_name: Optional[str] = None,
        additional_info: Optional[Dict[str, Any]] = None
    ) -> Optional[str]:
        """Save a structured JSON description of the error. Returns the path or None."""
        path = self._artifact_path(job_id, ERROR_LOGS, "error", index, "json")
        payload = {
            "timestamp": get_utc_now().isoformat(),
            "job_id": job_id,
            "operation": operation,
            "place_index": index,
            "place_name": place_name,
            "error": {
                "name": type(error).__name__,
                "message": str(error),
                "stack": "".join(traceback.format_exception(type(error), error, error.__traceback__)),
            },
            "additional_info": additional_info or {},
        }
        try:
            await asyncio.to_thread(_write_text, path, json.dumps(payload, indent=2))
            logger.debug(f"Saved error log: {path.name}")
            return str(path)
        except Exception as e:
            logger.warning(f"Failed to save error log: {e}")
            return None

    async def save_debug_artifacts(
        self,
        page,
        job_id: str,
        error: BaseException,
        operation: str,
        index: Optional[int] = None,
        place_name: Optional[str] = None,
        additional_info: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Optional[str]]:
        """Capture screenshot, HTML dump and error log together."""
        screenshot, html_dump, error_log = await asyncio.gather(
            self.save_screenshot(page, job_id, "error", index),
            self.save_html_dump(page, job_id, "error", index),
            self.save_error_log(job_id, error, operation, index, place_name, additional_info),
        )
        return {"screenshot": screenshot, "html_dump": html_dump, "error_log": error_log}

    def _cleanup(self) -> int:
        if not self.base_path.is_dir():
            return 0
        cutoff = time.time() - self.retention_days * 86400
        removed = 0
        for entry in self.base_path.iterdir():
            if entry.is_dir() and entry.stat().st_mtime < cutoff:
                shutil.rmtree(entry, ignore_errors=True)
                logger.info(f"Cleaned up old debug directory: {entry.name}")
                removed += 1
        return removed

    async def cleanup_old_debug_files(self) -> int:
        """Remove job folders older than the retention window."""
        try:
            return await asyncio.to_thread(self._cleanup)
        except OSError as e:
            logger.warning(f"Failed to cleanup old debug files: {e}")
            return 0
