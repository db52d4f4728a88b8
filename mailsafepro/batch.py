from __future__ import annotations

import asyncio
import inspect
import logging
import time
from typing import Any, Awaitable, Callable

from .constants import DEFAULT_POLL_INTERVAL_MS, DEFAULT_POLL_TIMEOUT_MS, LOGGER
from .errors import APIError, TimeoutError
from .models import BatchJobStatus, BatchValidationResult, JobState

ProgressCallback = Callable[[BatchJobStatus], Any]


class BatchPoller:
    """Polls a batch job at a fixed interval until it reaches a terminal state."""

    def __init__(
        self,
        fetch_status: Callable[[str], Awaitable[BatchJobStatus]],
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep=asyncio.sleep,
        logger: logging.Logger | None = None,
    ) -> None:
        self._fetch_status = fetch_status
        self._clock = clock
        self._sleep = sleep
        self._logger = logger or LOGGER

    async def wait_for_completion(
        self,
        job_id: str,
        *,
        poll_interval_ms: float = DEFAULT_POLL_INTERVAL_MS,
        timeout_ms: float = DEFAULT_POLL_TIMEOUT_MS,
        on_progress: ProgressCallback | None = None,
    ) -> BatchValidationResult:
        started = self._clock()
        self._logger.info(
            "Waiting for batch job %s interval=%sms timeout=%sms",
            job_id,
            poll_interval_ms,
            timeout_ms,
        )

        while True:
            status = await self._fetch_status(job_id)
            await self._report_progress(on_progress, status)

            if status.status is JobState.COMPLETED:
                if status.results is None:
                    raise APIError(
                        "Batch job completed without results",
                        code="MISSING_RESULTS",
                        details={"job_id": job_id},
                    )
                self._logger.info("Batch job %s completed", job_id)
                return status.results

            if status.status is JobState.FAILED:
                message = status.error or "Unknown error"
                raise APIError(
                    f"Batch job failed: {message}",
                    code="BATCH_FAILED",
                    details={"job_id": job_id, "error": status.error},
                )

            elapsed_ms = (self._clock() - started) * 1000
            if elapsed_ms > timeout_ms:
                raise TimeoutError(
                    f"Batch job {job_id} did not complete within {timeout_ms}ms",
                    code="BATCH_TIMEOUT",
                    transport_code=None,
                    details={"job_id": job_id, "timeout_ms": timeout_ms},
                )

            self._logger.debug(
                "Batch job %s is %s (%s%%), polling again in %sms",
                job_id,
                status.status.value,
                status.progress,
                poll_interval_ms,
            )
            await self._sleep(poll_interval_ms / 1000)

    async def _report_progress(
        self, on_progress: ProgressCallback | None, status: BatchJobStatus
    ) -> None:
        if on_progress is None:
            return
        try:
            result = on_progress(status)
            if inspect.isawaitable(result):
                await result
        except Exception as error:
            self._logger.warning("Progress callback failed: %s", error)
