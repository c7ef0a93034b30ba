"""Bulk shortening with client-side pacing and partial-failure isolation.

Flow Diagram — run_batch(items)
===============================
::
    ┌──────────────────┐
    │ run_batch(items)  │
    └────────┬─────────┘
             ▼
    ┌──────────────────┐   ineligible
    │ Eligibility gate  │──────────────▶ job.skipped[item] = reasons
    │ (first of a key)  │   duplicates ─▶ job.skipped[item#index]
    └────────┬─────────┘
             ▼
    ┌──────────────────┐   over BULK_MAX_SIZE
    │ Truncate          │──────────────▶ job.skipped[item] = ["bulk size limit"]
    └────────┬─────────┘
             ▼
    ┌──────────────────────────────────────────┐
    │ for each candidate, in input order:       │
    │   sleep(delay)   (not before the first)   │
    │   shorten_item   → job.results[item]      │
    │   not succeeded  → job.errors[item]       │
    │   progress += 1  → on_progress(...)       │
    └──────────────────────────────────────────┘

Key Behaviours
===============
- Strictly sequential; the delay keeps bursts under the provider quota so a
  batch does not degrade every item after the window fills.
- One item's failure never aborts the batch. Every processed item gets a
  result entry (a degraded one on failure).
- ``job.progress`` is replaced, never mutated, so pollers read a consistent
  ``completed``/``total`` pair that never goes backwards.
- A failing progress callback is logged and ignored.

Usage Examples
==============
```python
orchestrator = BulkOrchestrator(shortener, validator, delay_ms=200, max_size=50)
job = await orchestrator.run_batch(items, on_progress=print_progress)
print(job.succeeded_count, job.errors)
```
"""

import asyncio
import datetime
import inspect
import logging
from collections import OrderedDict
from collections.abc import Awaitable, Callable, Iterable
from typing import Any

from linkgate.eligibility import EligibilityValidator
from linkgate.enums import ErrorReason, ServiceStatus
from linkgate.exceptions import ValidationError
from linkgate.models import BulkJob, BulkProgress, ContentItem, EligibilityResult, ShortenResult
from linkgate.shortener import ShortenerClient

__all__ = ["BulkOrchestrator", "BulkJobRegistry", "ProgressCallback", "item_key"]

ProgressCallback = Callable[[BulkProgress, str, ShortenResult], Awaitable[Any] | Any]


def item_key(item: ContentItem, index: int) -> str:
    """Stable per-batch identifier for an item."""
    return item.identifier or item.id or f"item-{index}"


class BulkOrchestrator:
    def __init__(
        self,
        shortener: ShortenerClient,
        validator: EligibilityValidator,
        delay_ms: int = 200,
        max_size: int = 50,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        logger: logging.Logger | logging.LoggerAdapter | None = None,
    ) -> None:
        self.shortener = shortener
        self.validator = validator
        self.delay_ms = delay_ms
        self.max_size = max_size
        self._sleep = sleep
        self._logger = logger or logging.getLogger("linkgate.bulk")

    async def run_batch(
        self,
        items: Iterable[ContentItem],
        include_ineligible: bool = False,
        force: bool = False,
        on_progress: ProgressCallback | None = None,
        job: BulkJob | None = None,
        base_url: str | None = None,
    ) -> BulkJob:
        """Shorten every eligible item and return the populated job.

        Args:
            items: Items in processing order (ignored when ``job`` is given)
            include_ineligible: Also shorten ineligible items that still have an
                identifier and a readable date
            force: Passed to the validator; lifts the date gate only
            on_progress: Sync or async callback run after every item
            job: Pre-registered job to fill in (for HTTP polling)
            base_url: Override for the content site base URL

        Returns:
            BulkJob: results, errors, skipped and final progress
        """
        if job is None:
            job = BulkJob(items=list(items))
        job.status = ServiceStatus.RUNNING
        job.started_at = datetime.datetime.now(datetime.timezone.utc)

        try:
            candidates = self._select(job, include_ineligible, force)
            job.progress = BulkProgress(completed=0, total=len(candidates))
            self._logger.info(
                f"Bulk job {job.job_id}: {len(candidates)} to shorten, {len(job.skipped)} skipped"
            )

            for position, (key, item) in enumerate(candidates):
                if position > 0 and self.delay_ms > 0:
                    await self._sleep(self.delay_ms / 1000)

                result = await self._shorten_one(key, item, base_url)
                job.results[key] = result
                if not result.succeeded:
                    job.errors[key] = result.error_reason or ErrorReason.INTERNAL_ERROR

                job.progress = BulkProgress(completed=position + 1, total=len(candidates))
                await self._notify(on_progress, job.progress, key, result)

            job.status = ServiceStatus.COMPLETED
        except Exception:
            job.status = ServiceStatus.FAILED
            self._logger.exception(f"Bulk job {job.job_id} aborted")
        finally:
            job.finished_at = datetime.datetime.now(datetime.timezone.utc)

        self._logger.info(
            f"Bulk job {job.job_id} {job.status}: {job.succeeded_count} shortened, {len(job.errors)} errors"
        )
        return job

    def _select(self, job: BulkJob, include_ineligible: bool, force: bool) -> list[tuple[str, ContentItem]]:
        candidates = []
        seen: set[str] = set()
        for index, item in enumerate(job.items):
            key = item_key(item, index)
            if key in seen:
                job.skipped[f"{key}#{index}"] = [f"duplicate of an earlier {key!r} item"]
                continue
            seen.add(key)

            validation = self.validator.validate(item, force=force)
            if validation.is_eligible or (include_ineligible and self._can_include(item, validation)):
                candidates.append((key, item))
            else:
                job.skipped[key] = list(validation.reasons) or ["not eligible"]

        if len(candidates) > self.max_size:
            self._logger.warning(
                f"Bulk job {job.job_id}: {len(candidates)} candidates, limited to {self.max_size}"
            )
            for key, _ in candidates[self.max_size :]:
                job.skipped[key] = [f"exceeds bulk size limit of {self.max_size}"]
            candidates = candidates[: self.max_size]
        return candidates

    @staticmethod
    def _can_include(item: ContentItem, validation: EligibilityResult) -> bool:
        return bool((item.identifier or "").strip()) and validation.publish_date is not None

    async def _shorten_one(self, key: str, item: ContentItem, base_url: str | None) -> ShortenResult:
        try:
            return await self.shortener.shorten_item(item, base_url)
        except Exception as exc:
            self._logger.error(f"Bulk item {key} failed: {exc}")
            try:
                fallback_url = self.shortener.build_long_url(item.identifier, base_url)
            except ValidationError:
                fallback_url = item.identifier or ""
            return ShortenResult.degraded(fallback_url, ErrorReason.INTERNAL_ERROR)

    async def _notify(
        self,
        on_progress: ProgressCallback | None,
        progress: BulkProgress,
        key: str,
        result: ShortenResult,
    ) -> None:
        if on_progress is None:
            return
        try:
            outcome = on_progress(progress, key, result)
            if inspect.isawaitable(outcome):
                await outcome
        except Exception as exc:
            self._logger.warning(f"Progress callback failed for {key}: {exc}")


class BulkJobRegistry:
    """In-process registry of bulk jobs for progress polling.

    Bounded to ``max_jobs``; the oldest job is evicted first. A finished job
    is discarded once its final report has been read through ``consume``.
    """

    def __init__(self, max_jobs: int = 100) -> None:
        self.max_jobs = max_jobs
        self._jobs: OrderedDict[str, BulkJob] = OrderedDict()

    def __len__(self) -> int:
        return len(self._jobs)

    def create(self, items: Iterable[ContentItem]) -> BulkJob:
        job = BulkJob(items=list(items))
        self._jobs[job.job_id] = job
        while len(self._jobs) > self.max_jobs:
            self._jobs.popitem(last=False)
        return job

    def get(self, job_id: str) -> BulkJob | None:
        return self._jobs.get(job_id)

    def consume(self, job_id: str) -> BulkJob | None:
        job = self._jobs.get(job_id)
        if job is not None and job.is_finished:
            del self._jobs[job_id]
        return job
