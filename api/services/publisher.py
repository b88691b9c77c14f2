"""Publisher service broadcasting extraction progress over Redis pub/sub."""
import json
import logging
from typing import Any, Dict, Optional
import redis.asyncio as redis
from shared.config import settings

logger = logging.getLogger(__name__)


class PublisherService:
    """Fire-and-forget progress broadcaster.

    Messages go to the result channel; the WebSocket subscriber forwards
    them to whoever is watching the job. A failed publish is logged and
    dropped.
    """

    def __init__(self, redis_client: redis.Redis, channel: str = None):
        self.redis = redis_client
        self.result_channel = channel or settings.redis_result_channel

    async def _publish(self, message_type: str, job_id: str, payload: Dict[str, Any]) -> bool:
        message = {"type": message_type, "job_id": job_id, **payload}
        try:
            await self.redis.publish(self.result_channel, json.dumps(message, default=str))
        except Exception as e:
            logger.warning(f"Failed to publish {message_type} for extraction {job_id}: {e}")
            return False

        logger.debug(f"Emitted {message_type} for extraction {job_id}: {payload}")
        return True

    async def emit_progress(
        self,
        job_id: str,
        status: str,
        percentage: Optional[int] = None,
        current_index: Optional[int] = None,
        total_results: Optional[int] = None,
        message: Optional[str] = None
    ) -> bool:
        """Publish an extraction progress update."""
        payload = {
            "status": status,
            "percentage": percentage,
            "current_index": current_index,
            "total_results": total_results,
            "message": message
        }
        return await self._publish(
            "progress", job_id, {k: v for k, v in payload.items() if v is not None}
        )

    async def emit_complete(self, job_id: str, status: str, total_results: int) -> bool:
        """Publish extraction completion."""
        logger.info(f"Extraction {job_id} completed with {total_results} results")
        return await self._publish(
            "complete", job_id, {"status": status, "total_results": total_results}
        )

    async def emit_error(self, job_id: str, message: str) -> bool:
        """Publish an extraction failure."""
        return await self._publish("error", job_id, {"message": message})
