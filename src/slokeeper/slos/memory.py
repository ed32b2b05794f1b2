"""
In-memory stores for local development and tests.

They implement the protocols in ``slokeeper.slos.sources`` with the same
semantics as the SQL stores: append-only aggregates, inclusive time ranges
and compare-and-set alert state.
"""

from __future__ import annotations

import asyncio
import dataclasses
from collections import defaultdict
from datetime import datetime
from typing import Any, Callable, Iterable, Mapping, Sequence

from slokeeper.core.errors import (
    AggregateConflictError,
    ConflictError,
    InvalidConfigurationError,
    SLONotFoundError,
)
from slokeeper.slos.models import (
    SLO,
    AggregateRow,
    BurnAlertConfig,
    BurnAlertState,
    NotificationChannel,
    SourceTable,
    as_utc,
    utcnow,
)

Predicate = Callable[[Mapping[str, Any]], bool]


class InMemoryAggregateStore:
    """Append-only aggregate rows keyed by (slo_id, bucket_timestamp)."""

    def __init__(self, rows: Iterable[AggregateRow] = ()) -> None:
        self._rows: dict[str, dict[datetime, AggregateRow]] = defaultdict(dict)
        for row in rows:
            self._insert(row)

    def _insert(self, row: AggregateRow) -> None:
        bucket = as_utc(row.bucket_timestamp)
        if bucket in self._rows[row.slo_id]:
            raise AggregateConflictError(
                "Aggregate bucket already written",
                {"slo_id": row.slo_id, "bucket": bucket.isoformat()},
            )
        self._rows[row.slo_id][bucket] = dataclasses.replace(row, bucket_timestamp=bucket)

    async def sum_window(
        self, slo_id: str, start: datetime, end: datetime | None = None
    ) -> tuple[int, int]:
        numerator = denominator = 0
        for bucket, row in self._rows.get(slo_id, {}).items():
            if bucket < start or (end is not None and bucket > end):
                continue
            numerator += row.numerator_count
            denominator += row.denominator_count
        return numerator, denominator

    async def sum_buckets(
        self, slo_id: str, start: datetime, end: datetime
    ) -> list[AggregateRow]:
        rows = self._rows.get(slo_id, {})
        return [rows[b] for b in sorted(rows) if start <= b <= end]

    async def latest_bucket(self, slo_id: str) -> datetime | None:
        rows = self._rows.get(slo_id)
        return max(rows) if rows else None

    async def append(self, rows: Sequence[AggregateRow]) -> None:
        # All-or-nothing
        seen: set[tuple[str, datetime]] = set()
        for row in rows:
            key = (row.slo_id, as_utc(row.bucket_timestamp))
            if key in seen or key[1] in self._rows.get(row.slo_id, {}):
                raise AggregateConflictError(
                    "Aggregate bucket already written",
                    {"slo_id": row.slo_id, "bucket": key[1].isoformat()},
                )
            seen.add(key)
        for row in rows:
            self._insert(row)

    def size(self) -> int:
        return sum(len(rows) for rows in self._rows.values())


class InMemoryRawEventStore:
    """
    Raw telemetry events held as dicts.

    SQL predicate strings cannot be evaluated in memory, so every filter or
    good condition an SLO uses must be registered with a Python callable.
    Events need a ``timestamp`` key.
    """

    def __init__(
        self,
        events: Mapping[SourceTable, list[Mapping[str, Any]]] | None = None,
        predicates: Mapping[str, Predicate] | None = None,
    ) -> None:
        self._events: dict[SourceTable, list[Mapping[str, Any]]] = {
            table: list(rows) for table, rows in (events or {}).items()
        }
        self._predicates: dict[str, Predicate] = dict(predicates or {})

    def add_event(self, source_table: SourceTable, event: Mapping[str, Any]) -> None:
        self._events.setdefault(source_table, []).append(event)

    def register_predicate(self, expression: str, predicate: Predicate) -> None:
        self._predicates[expression] = predicate

    def _predicate(self, expression: str) -> Predicate:
        try:
            return self._predicates[expression]
        except KeyError:
            raise InvalidConfigurationError(
                f"No in-memory predicate registered for {expression!r}"
            ) from None

    async def count_conditional(
        self,
        source_table: SourceTable,
        filter: str,
        good_condition: str,
        start: datetime,
        end: datetime,
    ) -> tuple[int, int]:
        matches = self._predicate(filter)
        is_good = self._predicate(good_condition)
        numerator = denominator = 0
        for event in self._events.get(source_table, []):
            ts = as_utc(event["timestamp"])
            if ts < start or ts > end or not matches(event):
                continue
            denominator += 1
            if is_good(event):
                numerator += 1
        return numerator, denominator


class InMemorySLOStore:
    """SLO configuration documents with an asyncio-guarded alert state CAS."""

    def __init__(self, slos: Iterable[SLO] = ()) -> None:
        self._slos: dict[str, SLO] = {}
        self._lock = asyncio.Lock()
        for slo in slos:
            self._slos[slo.id] = dataclasses.replace(slo)

    async def get_slo(self, slo_id: str) -> SLO | None:
        slo = self._slos.get(slo_id)
        return dataclasses.replace(slo) if slo else None

    async def list_slos(self) -> list[SLO]:
        return [dataclasses.replace(s) for s in self._slos.values()]

    async def list_team_slos(self, team_id: str) -> list[SLO]:
        return [dataclasses.replace(s) for s in self._slos.values() if s.team_id == team_id]

    async def create_slo(self, slo: SLO) -> None:
        async with self._lock:
            if slo.id in self._slos:
                raise ConflictError(f"SLO already exists: {slo.id}", {"slo_id": slo.id})
            for existing in self._slos.values():
                if (existing.team_id, existing.service_name, existing.slo_name) == (
                    slo.team_id,
                    slo.service_name,
                    slo.slo_name,
                ):
                    raise ConflictError(
                        f"SLO name already used for service {slo.service_name}: {slo.slo_name}",
                        {"service_name": slo.service_name, "slo_name": slo.slo_name},
                    )
            self._slos[slo.id] = dataclasses.replace(slo)

    async def update_slo(self, slo: SLO) -> None:
        async with self._lock:
            current = self._slos.get(slo.id)
            if current is None:
                raise SLONotFoundError(slo.id)
            # Alert memory is owned by the alert pipeline
            self._slos[slo.id] = dataclasses.replace(
                slo,
                last_burn_alert_state=current.last_burn_alert_state,
                alert_state_version=current.alert_state_version,
                updated_at=utcnow(),
            )

    async def update_burn_alerts(self, slo_id: str, config: BurnAlertConfig) -> None:
        async with self._lock:
            current = self._slos.get(slo_id)
            if current is None:
                raise SLONotFoundError(slo_id)
            self._slos[slo_id] = dataclasses.replace(
                current, burn_alerts=config, updated_at=utcnow()
            )

    async def delete_slo(self, slo_id: str) -> bool:
        async with self._lock:
            return self._slos.pop(slo_id, None) is not None

    async def compare_and_set_alert_state(
        self, slo_id: str, expected_version: int, state: BurnAlertState
    ) -> bool:
        async with self._lock:
            current = self._slos.get(slo_id)
            if current is None or current.alert_state_version != expected_version:
                return False
            self._slos[slo_id] = dataclasses.replace(
                current,
                last_burn_alert_state=state,
                alert_state_version=expected_version + 1,
            )
            return True


class InMemoryChannelDirectory:
    """Webhook destinations keyed by id."""

    def __init__(self, channels: Iterable[NotificationChannel] = ()) -> None:
        self._channels = {c.id: c for c in channels}

    def add(self, channel: NotificationChannel) -> None:
        self._channels[channel.id] = channel

    async def get_channel(self, team_id: str, channel_id: str) -> NotificationChannel | None:
        channel = self._channels.get(channel_id)
        if channel is None or channel.team_id != team_id:
            return None
        return channel
