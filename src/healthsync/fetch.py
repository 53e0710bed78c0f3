"""Per-metric fetch fan-out.

Issues one retrieval per tracked metric kind against a SampleSource, up to
``max_concurrent`` at a time.  A metric that fails is logged and skipped; the
batch only fails when the source cannot serve anything at all.

Progress is a stream of FetchProgress values rather than a callback::

    fetcher = MetricFetcher(source)
    async for event in fetcher.iter_fetch(start, end):
        print(f"{event.fraction:.0%} {event.label}")
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import AsyncIterator, Iterable

from src.healthsync.base import DataPoint, SampleSource, SourceUnavailableError
from src.healthsync.metrics import METRIC_REGISTRY, MetricKind, display_name

logger = logging.getLogger("amach.healthsync.fetch")


@dataclass(frozen=True)
class FetchProgress:
    """Emitted once per metric kind as its retrieval finishes.

    Attributes:
        completed:   Metrics finished so far, including this one.
        total:       Metrics in the batch.
        metric_kind: Kind that just finished.
        points:      Points it returned (empty on failure).
        error:       Failure message if the retrieval raised.
    """

    completed: int
    total: int
    metric_kind: str
    points: tuple[DataPoint, ...] = field(default=(), repr=False)
    error: str | None = None

    @property
    def fraction(self) -> float:
        return self.completed / self.total if self.total else 1.0

    @property
    def label(self) -> str:
        return f"Fetching {display_name(self.metric_kind)}..."

    @property
    def point_count(self) -> int:
        return len(self.points)


class MetricFetcher:
    """Fan out retrievals for every tracked metric kind.

    Usage::

        fetcher = MetricFetcher(source, max_concurrent=4)
        data = await fetcher.fetch_all(start, end)   # kind -> [DataPoint]
    """

    def __init__(
        self,
        source: SampleSource,
        metric_kinds: Iterable[MetricKind] | None = None,
        max_concurrent: int = 4,
    ) -> None:
        """Initialize the fetcher.

        Args:
            source:         Sample source to read from.
            metric_kinds:   Kinds to fetch (the whole registry by default).
            max_concurrent: Maximum simultaneous retrievals.
        """
        self._source = source
        self._kinds = list(metric_kinds) if metric_kinds is not None else list(METRIC_REGISTRY)
        self._max_concurrent = max(1, max_concurrent)

    @property
    def metric_kinds(self) -> list[MetricKind]:
        return list(self._kinds)

    async def _fetch_one(
        self,
        kind: MetricKind,
        start: datetime,
        end: datetime,
        semaphore: asyncio.Semaphore,
    ) -> tuple[MetricKind, list[DataPoint], str | None]:
        async with semaphore:
            try:
                points = await self._source.fetch(kind.value, start, end)
            except Exception as exc:
                # Missing permission, no capability, transient I/O: skip this metric
                logger.warning("Failed to fetch %s: %s", kind.value, exc)
                return kind, [], str(exc) or exc.__class__.__name__
        return kind, list(points), None

    async def iter_fetch(
        self, start: datetime, end: datetime
    ) -> AsyncIterator[FetchProgress]:
        """Fetch every metric kind, yielding progress as each one finishes.

        Events arrive in completion order, which is unrelated to registry
        order.

        Raises:
            SourceUnavailableError: If the source cannot serve any data.
        """
        if not self._source.is_available():
            raise SourceUnavailableError()

        total = len(self._kinds)
        semaphore = asyncio.Semaphore(self._max_concurrent)
        tasks = [
            asyncio.ensure_future(self._fetch_one(kind, start, end, semaphore))
            for kind in self._kinds
        ]
        logger.info(
            "Fetching %d metric kinds from %s (%s → %s)",
            total, self._source.DISPLAY_NAME, start.isoformat(), end.isoformat(),
        )

        completed = 0
        failed = 0
        try:
            for next_done in asyncio.as_completed(tasks):
                kind, points, error = await next_done
                completed += 1
                if error is not None:
                    failed += 1
                yield FetchProgress(
                    completed=completed,
                    total=total,
                    metric_kind=kind.value,
                    points=tuple(points),
                    error=error,
                )
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()

        logger.info("Fetch complete: %d/%d metric kinds, %d failed", completed, total, failed)

    async def fetch_all(
        self, start: datetime, end: datetime
    ) -> dict[str, list[DataPoint]]:
        """Fetch every metric kind and keep the non-empty results.

        Returns:
            Metric kind identifier -> its points.  Kinds with no data or a
            failed retrieval are absent.
        """
        data: dict[str, list[DataPoint]] = {}
        async for event in self.iter_fetch(start, end):
            if event.points:
                data[event.metric_kind] = list(event.points)
        return data
