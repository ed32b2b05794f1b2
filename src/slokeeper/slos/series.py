"""
Burn rate time series for charting.

One point per stored aggregate bucket; buckets are never re-sampled.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterator

import structlog

from slokeeper.core.errors import InvalidConfigurationError, SLONotFoundError, guard_storage
from slokeeper.slos.calculator import achieved_percent, burn_rate
from slokeeper.slos.models import AggregateRow, BurnRatePoint
from slokeeper.slos.sources import AggregateSource, SLOStore
from slokeeper.slos.status import DEFAULT_QUERY_TIMEOUT

logger = structlog.get_logger()


@dataclass(frozen=True)
class BurnRateSeries:
    """
    Finite, restartable sequence of ``BurnRatePoint``.

    Points are derived on iteration from the fetched bucket sums, so the
    series can be walked any number of times.
    """

    slo_id: str
    target: float
    rows: tuple[AggregateRow, ...]

    def __iter__(self) -> Iterator[BurnRatePoint]:
        for row in self.rows:
            yield BurnRatePoint(
                timestamp=row.bucket_timestamp,
                numerator=row.numerator_count,
                denominator=row.denominator_count,
                achieved=achieved_percent(row.numerator_count, row.denominator_count),
                burn_rate=burn_rate(self.target, row.numerator_count, row.denominator_count),
            )

    def __len__(self) -> int:
        return len(self.rows)

    def totals(self) -> tuple[int, int]:
        """Summed (numerator, denominator) across all points."""
        return (
            sum(row.numerator_count for row in self.rows),
            sum(row.denominator_count for row in self.rows),
        )

    def to_list(self) -> list[dict]:
        return [point.to_dict() for point in self]


class BurnRateSeriesBuilder:
    """Builds per-bucket burn rate series from the aggregate store."""

    def __init__(
        self,
        slo_store: SLOStore,
        aggregates: AggregateSource,
        query_timeout: timedelta = DEFAULT_QUERY_TIMEOUT,
    ) -> None:
        self.slo_store = slo_store
        self.aggregates = aggregates
        self.query_timeout = query_timeout

    async def build(
        self,
        slo_id: str,
        time_start: datetime,
        time_end: datetime,
        team_id: str | None = None,
    ) -> BurnRateSeries:
        """Series over ``[time_start, time_end]``, ascending by bucket."""
        if time_start > time_end:
            raise InvalidConfigurationError(
                "Series start must not be after end",
                {"time_start": time_start.isoformat(), "time_end": time_end.isoformat()},
            )

        timeout = self.query_timeout.total_seconds()
        async with guard_storage("get_slo", slo_id=slo_id):
            slo = await asyncio.wait_for(self.slo_store.get_slo(slo_id), timeout)

        if slo is None or (team_id is not None and slo.team_id != team_id):
            raise SLONotFoundError(slo_id)

        async with guard_storage("sum_buckets", slo_id=slo_id):
            rows = await asyncio.wait_for(
                self.aggregates.sum_buckets(slo_id, time_start, time_end), timeout
            )

        logger.debug("burn_rate_series_built", slo_id=slo_id, points=len(rows))

        return BurnRateSeries(slo_id=slo_id, target=slo.target_value, rows=tuple(rows))
