"""
SLO status evaluation.

Reads windowed event counts either from the pre-aggregated store or, in
real-time mode, directly from raw telemetry, and turns them into a
``StatusResult``.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta
from typing import Callable

import structlog

from slokeeper.core.errors import InvalidConfigurationError, SLONotFoundError, guard_storage
from slokeeper.slos.calculator import ErrorBudgetCalculator
from slokeeper.slos.models import SLO, BuilderSLI, StatusResult, utcnow
from slokeeper.slos.sources import AggregateSource, RawEventSource, SLOStore

logger = structlog.get_logger()

DEFAULT_QUERY_TIMEOUT = timedelta(minutes=2)


class StatusEvaluator:
    """Computes the current status of an SLO over its trailing window."""

    def __init__(
        self,
        slo_store: SLOStore,
        aggregates: AggregateSource,
        raw_events: RawEventSource | None = None,
        clock: Callable[[], datetime] = utcnow,
        query_timeout: timedelta = DEFAULT_QUERY_TIMEOUT,
    ) -> None:
        self.slo_store = slo_store
        self.aggregates = aggregates
        self.raw_events = raw_events
        self.clock = clock
        self.query_timeout = query_timeout

    async def get_status(
        self, slo_id: str, team_id: str | None = None, realtime: bool = False
    ) -> StatusResult:
        """
        Get SLO status by id.

        Args:
            slo_id: SLO identifier
            team_id: Owning team; a mismatch is reported as not found
            realtime: Count raw events instead of reading aggregates

        Raises:
            SLONotFoundError: Unknown SLO, or SLO owned by another team
            InvalidConfigurationError: Real-time requested for a raw-mode SLO
            StorageError: Backend failure or timeout
        """
        async with guard_storage("get_slo", slo_id=slo_id):
            slo = await asyncio.wait_for(
                self.slo_store.get_slo(slo_id), self.query_timeout.total_seconds()
            )

        if slo is None or (team_id is not None and slo.team_id != team_id):
            raise SLONotFoundError(slo_id)

        return await self.evaluate(slo, realtime=realtime)

    async def evaluate(self, slo: SLO, realtime: bool = False) -> StatusResult:
        """Evaluate an already loaded SLO."""
        source = self._realtime_source(slo) if realtime else None

        window_end = self.clock()
        window_start = slo.time_window.get_start_time(window_end)

        if source is not None:
            sli, raw_events = source
            numerator, denominator = await self._count_raw(
                slo, sli, raw_events, window_start, window_end
            )
        else:
            numerator, denominator = await self._sum_aggregates(slo, window_start)

        result = ErrorBudgetCalculator(slo).calculate(
            numerator,
            denominator,
            window_start=window_start,
            window_end=window_end,
            computed_at=window_end,
        )

        logger.debug(
            "slo_status_computed",
            slo_id=slo.id,
            realtime=realtime,
            numerator=numerator,
            denominator=denominator,
            status=result.status.value,
        )

        return result

    def _realtime_source(self, slo: SLO) -> tuple[BuilderSLI, RawEventSource]:
        if not isinstance(slo.sli, BuilderSLI):
            raise InvalidConfigurationError(
                "Real-time status requires a builder-mode SLI",
                {"slo_id": slo.id},
            )
        if self.raw_events is None:
            raise InvalidConfigurationError(
                "Real-time status requires a raw telemetry source",
                {"slo_id": slo.id},
            )
        return slo.sli, self.raw_events

    async def _sum_aggregates(self, slo: SLO, window_start: datetime) -> tuple[int, int]:
        async with guard_storage("sum_window", slo_id=slo.id):
            return await asyncio.wait_for(
                self.aggregates.sum_window(slo.id, window_start),
                self.query_timeout.total_seconds(),
            )

    async def _count_raw(
        self,
        slo: SLO,
        sli: BuilderSLI,
        raw_events: RawEventSource,
        window_start: datetime,
        window_end: datetime,
    ) -> tuple[int, int]:
        async with guard_storage("count_conditional", slo_id=slo.id):
            return await asyncio.wait_for(
                raw_events.count_conditional(
                    slo.source_table,
                    sli.filter,
                    sli.good_condition,
                    window_start,
                    window_end,
                ),
                self.query_timeout.total_seconds(),
            )
