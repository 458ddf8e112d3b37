import asyncio
import time
import uuid
from typing import Coroutine, Optional

from app.logging_config import get_logger

logger = get_logger("job_registry")


def new_job_id(prefix: str, subject: Optional[str] = None) -> str:
    if subject:
        return f"{prefix}_{subject}_{int(time.time() * 1000)}"
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


class JobRegistry:
    """In-process registry of background asyncio jobs.

    Jobs deregister themselves when they finish. Nothing survives a process
    restart; ``stop_all`` runs at shutdown so no job sends against a session
    that is going away.
    """

    def __init__(self):
        self._jobs: dict[str, asyncio.Task] = {}

    def start(self, job_id: str, coro: Coroutine) -> str:
        existing = self._jobs.get(job_id)
        if existing is not None and not existing.done():
            existing.cancel()
        task = asyncio.create_task(coro, name=job_id)
        self._jobs[job_id] = task
        task.add_done_callback(lambda finished, key=job_id: self._on_done(key, finished))
        logger.info("Job started", extra={"context": {"job_id": job_id}})
        return job_id

    def stop(self, job_id: Optional[str]) -> bool:
        if not job_id:
            return False
        task = self._jobs.pop(job_id, None)
        if task is None:
            return False
        if not task.done():
            task.cancel()
        logger.info("Job stopped", extra={"context": {"job_id": job_id}})
        return True

    async def stop_all(self) -> int:
        tasks = list(self._jobs.values())
        self._jobs.clear()
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        logger.info("All jobs stopped", extra={"context": {"count": len(tasks)}})
        return len(tasks)

    def count(self) -> int:
        return sum(1 for task in self._jobs.values() if not task.done())

    def is_running(self, job_id: Optional[str]) -> bool:
        task = self._jobs.get(job_id) if job_id else None
        return task is not None and not task.done()

    def get_task(self, job_id: str) -> Optional[asyncio.Task]:
        return self._jobs.get(job_id)

    def _on_done(self, job_id: str, task: asyncio.Task) -> None:
        if self._jobs.get(job_id) is task:
            del self._jobs[job_id]
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                "Job crashed",
                extra={"context": {"job_id": job_id, "error": str(exc)}},
                exc_info=exc,
            )
        else:
            logger.info("Job finished", extra={"context": {"job_id": job_id}})
