from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable

import structlog

from slokeeper.config import Settings, get_settings
from slokeeper.core.errors import SLOKeeperError, format_error_message, guard_storage
from slokeeper.db.session import (
    dispose_engines,
    get_session_factory,
    get_telemetry_engine,
    init_engine,
)
from slokeeper.logging import configure_logging
from slokeeper.slos.aggregation import AggregationWriter
from slokeeper.slos.alerts import AlertEvaluator
from slokeeper.slos.models import SLO, utcnow
from slokeeper.slos.notifiers import WebhookNotifier
from slokeeper.slos.pipeline import EvaluationOutcome, SLOEvaluationPipeline
from slokeeper.slos.sources import SLOStore
from slokeeper.slos.status import StatusEvaluator
from slokeeper.slos.storage import (
    AggregateRepository,
    RawEventRepository,
    SLORepository,
    WebhookRepository,
)

logger = structlog.get_logger()


@dataclass
class TickReport:
    """Summary of one scheduler tick."""

    started_at: datetime
    finished_at: datetime | None = None
    evaluated: int = 0
    alerts_sent: int = 0
    failures: dict[str, str] = field(default_factory=dict)
    cancelled: list[str] = field(default_factory=list)
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "evaluated": self.evaluated,
            "alerts_sent": self.alerts_sent,
            "failures": dict(self.failures),
            "cancelled": list(self.cancelled),
            "error": self.error,
        }


class EvaluationScheduler:
    """
    Periodically evaluates every SLO with bounded parallelism.

    A failure or timeout of one SLO never affects its siblings; the tick as
    a whole is bounded by ``tick_timeout`` and unfinished work is cancelled.

    With a writer, builder-mode SLOs first roll pending buckets up for at
    most ``aggregation_timeout`` seconds. The evaluation runs afterwards under
    its own ``slo_timeout``, whatever the writer managed.
    """

    def __init__(
        self,
        pipeline: SLOEvaluationPipeline,
        slo_store: SLOStore,
        max_concurrency: int = 8,
        slo_timeout: float = 150.0,
        tick_timeout: float = 300.0,
        writer: AggregationWriter | None = None,
        aggregation_timeout: float = 60.0,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.pipeline = pipeline
        self.slo_store = slo_store
        self.max_concurrency = max(1, max_concurrency)
        self.slo_timeout = slo_timeout
        self.tick_timeout = tick_timeout
        self.writer = writer
        self.aggregation_timeout = aggregation_timeout
        self.clock = clock

    async def run_tick(self) -> TickReport:
        report = TickReport(started_at=self.clock())

        try:
            async with guard_storage("list_slos"):
                slos = await asyncio.wait_for(self.slo_store.list_slos(), self.slo_timeout)
        except SLOKeeperError as exc:
            logger.error(
                "tick_slo_listing_failed",
                error=format_error_message(exc),
                error_type=type(exc).__name__,
            )
            report.error = format_error_message(exc)
            report.finished_at = self.clock()
            return report

        semaphore = asyncio.Semaphore(self.max_concurrency)
        tasks = {
            asyncio.create_task(self._run_one(slo, semaphore), name=f"slo-eval-{slo.id}"): slo
            for slo in slos
        }

        pending: set[asyncio.Task[EvaluationOutcome]] = set()
        if tasks:
            _, pending = await asyncio.wait(tasks, timeout=self.tick_timeout)

        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

        for task, slo in tasks.items():
            self._record(report, task, slo, cancelled=task in pending)

        report.finished_at = self.clock()
        logger.info(
            "tick_completed",
            slos=len(slos),
            evaluated=report.evaluated,
            alerts_sent=report.alerts_sent,
            failures=len(report.failures),
            cancelled=len(report.cancelled),
        )
        return report

    async def _run_one(self, slo: SLO, semaphore: asyncio.Semaphore) -> EvaluationOutcome:
        async with semaphore:
            if self.writer is not None and slo.is_builder:
                await self._aggregate(self.writer, slo)
            return await asyncio.wait_for(self.pipeline.evaluate_slo(slo), self.slo_timeout)

    async def _aggregate(self, writer: AggregationWriter, slo: SLO) -> None:
        # The writer stops itself at the budget; rows are appended as it goes
        try:
            await writer.write_pending(slo, time_budget=self.aggregation_timeout)
        except SLOKeeperError as exc:
            logger.warning(
                "aggregation_failed",
                slo_id=slo.id,
                error=format_error_message(exc),
                error_type=type(exc).__name__,
            )

    def _record(
        self,
        report: TickReport,
        task: asyncio.Task[EvaluationOutcome],
        slo: SLO,
        cancelled: bool,
    ) -> None:
        if cancelled or task.cancelled():
            logger.warning("slo_evaluation_cancelled", slo_id=slo.id)
            report.cancelled.append(slo.id)
            return

        exc = task.exception()
        if isinstance(exc, asyncio.TimeoutError):
            logger.warning("slo_evaluation_timeout", slo_id=slo.id, timeout=self.slo_timeout)
            report.failures[slo.id] = "timeout"
            return
        if exc is not None:
            logger.error(
                "slo_evaluation_crashed",
                slo_id=slo.id,
                error=str(exc),
                error_type=type(exc).__name__,
                exc_info=exc,
            )
            report.failures[slo.id] = f"{type(exc).__name__}: {exc}"
            return

        outcome = task.result()
        report.evaluated += 1
        if outcome.notified:
            report.alerts_sent += 1
        if outcome.error is not None:
            report.failures[slo.id] = format_error_message(outcome.error)

    async def run_forever(
        self, interval: float, stop_event: asyncio.Event | None = None
    ) -> None:
        """Run ticks every ``interval`` seconds until ``stop_event`` is set."""
        stop_event = stop_event or asyncio.Event()
        logger.info("scheduler_started", interval=interval, max_concurrency=self.max_concurrency)

        while not stop_event.is_set():
            await self.run_tick()
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=interval)
            except asyncio.TimeoutError:
                continue

        logger.info("scheduler_stopped")


def build_scheduler(settings: Settings | None = None) -> EvaluationScheduler:
    """Wire the SQL stores and evaluators from settings."""
    settings = settings or get_settings()
    init_engine(settings)

    sessions = get_session_factory()
    telemetry = get_telemetry_engine()
    query_timeout = timedelta(seconds=settings.query_timeout_seconds)

    slo_store = SLORepository(sessions)
    aggregates = AggregateRepository(telemetry)
    raw_events = RawEventRepository(telemetry, settings.raw_timestamp_column)

    pipeline = SLOEvaluationPipeline(
        status_evaluator=StatusEvaluator(
            slo_store, aggregates, raw_events, query_timeout=query_timeout
        ),
        alert_evaluator=AlertEvaluator(
            realert_interval=timedelta(minutes=settings.realert_interval_minutes)
        ),
        notifier=WebhookNotifier(timeout=settings.notification_timeout_seconds),
        slo_store=slo_store,
        channels=WebhookRepository(sessions),
        settings=settings,
    )

    writer = None
    if settings.aggregate_on_tick:
        writer = AggregationWriter(
            raw_events,
            aggregates,
            bucket_size=timedelta(seconds=settings.aggregation_bucket_seconds),
            query_timeout=query_timeout,
            max_buckets=settings.aggregation_max_buckets,
        )

    return EvaluationScheduler(
        pipeline,
        slo_store,
        max_concurrency=settings.max_concurrency,
        slo_timeout=settings.slo_timeout_seconds,
        tick_timeout=settings.tick_timeout_seconds,
        writer=writer,
        aggregation_timeout=settings.aggregation_timeout_seconds,
    )


async def _serve(settings: Settings) -> None:
    scheduler = build_scheduler(settings)
    try:
        await scheduler.run_forever(settings.tick_interval_seconds)
    finally:
        await dispose_engines()


def main() -> None:
    settings = get_settings()
    configure_logging(settings.log_level, json=not settings.debug, component="scheduler")

    logger.info("scheduler_boot", database=settings.database_url.split("@")[-1])

    asyncio.run(_serve(settings))
