"""
Storage capability interfaces.

The evaluators only depend on these protocols, so the same algorithms run
against the SQL stores in ``slokeeper.slos.storage`` and the in-memory
stores in ``slokeeper.slos.memory``.
"""

from __future__ import annotations

from datetime import datetime
from typing import Protocol, Sequence, runtime_checkable

from slokeeper.slos.models import (
    SLO,
    AggregateRow,
    BurnAlertConfig,
    BurnAlertState,
    NotificationChannel,
    SourceTable,
)


@runtime_checkable
class AggregateSource(Protocol):
    """Pre-aggregated (sloId, bucket, numerator, denominator) facts."""

    async def sum_window(
        self, slo_id: str, start: datetime, end: datetime | None = None
    ) -> tuple[int, int]:
        """Sum (numerator, denominator) over buckets with ``start <= bucket [<= end]``."""
        ...

    async def sum_buckets(
        self, slo_id: str, start: datetime, end: datetime
    ) -> list[AggregateRow]:
        """Per-bucket sums within ``[start, end]``, ascending by bucket."""
        ...

    async def latest_bucket(self, slo_id: str) -> datetime | None:
        ...

    async def append(self, rows: Sequence[AggregateRow]) -> None:
        """Insert new buckets; existing (slo_id, bucket) keys are never rewritten."""
        ...


@runtime_checkable
class RawEventSource(Protocol):
    """Raw telemetry events, queried with verbatim SLI predicates."""

    async def count_conditional(
        self,
        source_table: SourceTable,
        filter: str,
        good_condition: str,
        start: datetime,
        end: datetime,
    ) -> tuple[int, int]:
        """Return (count matching filter and good_condition, count matching filter)."""
        ...


@runtime_checkable
class SLOStore(Protocol):
    """Key-based access to SLO configuration documents."""

    async def get_slo(self, slo_id: str) -> SLO | None:
        ...

    async def list_slos(self) -> list[SLO]:
        ...

    async def list_team_slos(self, team_id: str) -> list[SLO]:
        ...

    async def create_slo(self, slo: SLO) -> None:
        ...

    async def update_slo(self, slo: SLO) -> None:
        ...

    async def update_burn_alerts(self, slo_id: str, config: BurnAlertConfig) -> None:
        ...

    async def delete_slo(self, slo_id: str) -> bool:
        ...

    async def compare_and_set_alert_state(
        self, slo_id: str, expected_version: int, state: BurnAlertState
    ) -> bool:
        """Write ``state`` only if the stored version still equals ``expected_version``."""
        ...


@runtime_checkable
class ChannelDirectory(Protocol):
    """Resolves burn alert channel references to webhook destinations."""

    async def get_channel(self, team_id: str, channel_id: str) -> NotificationChannel | None:
        ...
