"""
Aggregate writer.

Rolls raw telemetry up into fixed-size (numerator, denominator) buckets in
the aggregate store. Only complete buckets are written, and an existing
bucket is never rewritten.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Callable

import structlog

from slokeeper.core.errors import InvalidConfigurationError, StorageError, guard_storage
from slokeeper.slos.models import SLO, AggregateRow, BuilderSLI, as_utc, utcnow
from slokeeper.slos.sources import AggregateSource, RawEventSource
from slokeeper.slos.status import DEFAULT_QUERY_TIMEOUT

logger = structlog.get_logger()

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_TICK = timedelta(microseconds=1)


def floor_bucket(ts: datetime, size: timedelta) -> datetime:
    """Align ``ts`` down to a multiple of ``size`` since the epoch."""
    offset = (as_utc(ts) - _EPOCH) // size
    return _EPOCH + offset * size


class AggregationWriter:
    """
    Writes pending aggregate buckets for builder-mode SLOs.

    Rows are appended in batches of ``append_batch`` as the scan advances, so
    a run that stops early (bucket cap, time budget or a failed count) keeps
    everything it computed and the next run resumes after the last bucket.
    """

    def __init__(
        self,
        raw_events: RawEventSource,
        aggregates: AggregateSource,
        bucket_size: timedelta = timedelta(minutes=1),
        clock: Callable[[], datetime] = utcnow,
        query_timeout: timedelta = DEFAULT_QUERY_TIMEOUT,
        append_batch: int = 500,
        max_buckets: int | None = None,
    ) -> None:
        if bucket_size <= timedelta(0):
            raise InvalidConfigurationError("Bucket size must be positive")
        if append_batch < 1:
            raise InvalidConfigurationError("Append batch must hold at least one row")
        self.raw_events = raw_events
        self.aggregates = aggregates
        self.bucket_size = bucket_size
        self.clock = clock
        self.query_timeout = query_timeout
        self.append_batch = append_batch
        self.max_buckets = max_buckets

    async def write_pending(
        self,
        slo: SLO,
        until: datetime | None = None,
        time_budget: float | None = None,
    ) -> list[AggregateRow]:
        """
        Aggregate complete buckets not yet written for ``slo``.

        Args:
            slo: Builder-mode SLO
            until: Upper bound; buckets ending after ``floor(until)`` are skipped
            time_budget: Seconds after which no further bucket is started

        Returns:
            Rows appended, oldest first
        """
        if not isinstance(slo.sli, BuilderSLI):
            raise InvalidConfigurationError(
                "Aggregation requires a builder-mode SLI", {"slo_id": slo.id}
            )
        sli = slo.sli

        loop = asyncio.get_running_loop()
        deadline = None if time_budget is None else loop.time() + time_budget

        def next_timeout() -> float | None:
            timeout = self.query_timeout.total_seconds()
            if deadline is None:
                return timeout
            remaining = deadline - loop.time()
            return min(timeout, remaining) if remaining > 0 else None

        now = self.clock()
        end = floor_bucket(until or now, self.bucket_size)

        async with guard_storage("latest_bucket", slo_id=slo.id):
            latest = await asyncio.wait_for(
                self.aggregates.latest_bucket(slo.id), self.query_timeout.total_seconds()
            )

        if latest is None:
            bucket = floor_bucket(slo.time_window.get_start_time(now), self.bucket_size)
        else:
            bucket = as_utc(latest) + self.bucket_size

        written: list[AggregateRow] = []
        batch: list[AggregateRow] = []
        stopped: str | None = None

        while bucket + self.bucket_size <= end:
            if self.max_buckets is not None and len(written) + len(batch) >= self.max_buckets:
                stopped = "max_buckets"
                break
            timeout = next_timeout()
            if timeout is None:
                stopped = "time_budget"
                break

            try:
                async with guard_storage("count_conditional", slo_id=slo.id):
                    numerator, denominator = await asyncio.wait_for(
                        self.raw_events.count_conditional(
                            slo.source_table,
                            sli.filter,
                            sli.good_condition,
                            bucket,
                            bucket + self.bucket_size - _TICK,
                        ),
                        timeout,
                    )
            except StorageError:
                await self._flush(slo, batch, written)
                raise

            batch.append(
                AggregateRow(
                    slo_id=slo.id,
                    bucket_timestamp=bucket,
                    numerator_count=numerator,
                    denominator_count=denominator,
                )
            )
            bucket += self.bucket_size
            if len(batch) >= self.append_batch:
                await self._flush(slo, batch, written)

        await self._flush(slo, batch, written)

        logger.info(
            "aggregates_written",
            slo_id=slo.id,
            buckets=len(written),
            until=end.isoformat(),
            stopped=stopped,
            next_bucket=bucket.isoformat(),
        )

        return written

    async def _flush(
        self, slo: SLO, batch: list[AggregateRow], written: list[AggregateRow]
    ) -> None:
        if not batch:
            return
        async with guard_storage("append", slo_id=slo.id, buckets=len(batch)):
            await asyncio.wait_for(
                self.aggregates.append(list(batch)), self.query_timeout.total_seconds()
            )
        written.extend(batch)
        batch.clear()
