"""
Job Manager Service
===================

Redis-backed job state for background processing.

Each job is one JSON document under `job:{id}` with a TTL. When Redis is
unreachable the manager keeps jobs in process memory instead, which is
enough for a single-worker development setup.
"""

import json
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import redis

from config import Settings, get_settings

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class JobNotFoundError(KeyError):
    """Raised when updating a job that does not exist (or has expired)."""


class JobManager:
    """Create, update and read background job records."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        redis_client: Optional[redis.Redis] = None,
        use_redis: bool = True,
    ):
        """
        Args:
            settings: Application settings
            redis_client: Pre-built client (connects from settings when omitted)
            use_redis: False forces the in-memory store
        """
        self.settings = settings or get_settings()
        self.job_ttl = self.settings.job_ttl_seconds
        self._jobs: Dict[str, Dict[str, Any]] = {}
        self.redis_client = redis_client
        if self.redis_client is None and use_redis:
            self.redis_client = self._connect()

    def _connect(self) -> Optional[redis.Redis]:
        client = redis.Redis(
            host=self.settings.redis_host,
            port=self.settings.redis_port,
            db=self.settings.redis_db,
            password=self.settings.redis_password or None,
            decode_responses=True,
            socket_connect_timeout=2,
        )
        try:
            client.ping()
        except redis.RedisError as e:
            logger.warning(f"Redis unavailable, using in-memory job store: {e}")
            return None
        return client

    @property
    def backend(self) -> str:
        return "redis" if self.redis_client else "memory"

    def _store(self, job_data: Dict[str, Any]) -> None:
        if self.redis_client:
            self.redis_client.setex(f"job:{job_data['job_id']}", self.job_ttl, json.dumps(job_data))
        else:
            self._jobs[job_data["job_id"]] = job_data

    def create_job(self, job_type: str, metadata: Optional[Dict[str, Any]] = None) -> str:
        """
        Create a pending job.

        Args:
            job_type: process, transcribe or analyze
            metadata: Request details worth showing with the job

        Returns:
            The new job id
        """
        job_id = str(uuid.uuid4())
        self._store({
            "job_id": job_id,
            "job_type": job_type,
            "status": "pending",
            "progress": 0,
            "current_stage": None,
            "result": None,
            "error": None,
            "metadata": metadata or {},
            "created_at": _now(),
            "updated_at": _now(),
        })
        logger.info(f"Created {job_type} job {job_id} ({self.backend})")
        return job_id

    def get_job(self, job_id: str) -> Optional[Dict[str, Any]]:
        if self.redis_client:
            data = self.redis_client.get(f"job:{job_id}")
            return json.loads(data) if data else None
        return self._jobs.get(job_id)

    def update_job(self, job_id: str, updates: Dict[str, Any]) -> None:
        job_data = self.get_job(job_id)
        if not job_data:
            raise JobNotFoundError(job_id)
        job_data.update(updates)
        job_data["updated_at"] = _now()
        self._store(job_data)

    def set_job_progress(self, job_id: str, progress: int, stage: str) -> None:
        self.update_job(job_id, {
            "status": "processing",
            "progress": progress,
            "current_stage": stage,
        })

    def set_job_completed(self, job_id: str, result: Any) -> None:
        self.update_job(job_id, {
            "status": "completed",
            "progress": 100,
            "current_stage": "completed",
            "result": result,
        })

    def set_job_failed(self, job_id: str, error: Dict[str, Any]) -> None:
        self.update_job(job_id, {
            "status": "failed",
            "current_stage": "failed",
            "error": error,
        })
