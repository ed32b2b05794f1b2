"""
SLO storage and repository.

SQL implementations of the capability protocols in
``slokeeper.slos.sources``. Each call opens its own short-lived session or
connection, so one repository instance is safe to share across concurrent
scheduler workers.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Sequence

import structlog
from sqlalchemy import DateTime, case, column, func, insert, literal_column, select, table, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from slokeeper.core.errors import (
    AggregateConflictError,
    ConflictError,
    SLONotFoundError,
)
from slokeeper.db.models import SLOAggregateModel, SLOModel, WebhookModel
from slokeeper.slos.models import (
    SLO,
    AggregateRow,
    BuilderSLI,
    BurnAlertConfig,
    BurnAlertState,
    NotificationChannel,
    RawSLI,
    SourceTable,
    TimeWindow,
    as_utc,
    utcnow,
)

logger = structlog.get_logger()


class SLORepository:
    """Repository for SLO configuration documents."""

    def __init__(self, sessions: async_sessionmaker[AsyncSession]) -> None:
        self.sessions = sessions

    async def create_slo(self, slo: SLO) -> None:
        """Create a new SLO; service/name pairs are unique per team."""
        async with self.sessions() as session:
            duplicate = await session.execute(
                select(SLOModel.id).where(
                    SLOModel.team_id == slo.team_id,
                    SLOModel.service_name == slo.service_name,
                    SLOModel.slo_name == slo.slo_name,
                )
            )
            if duplicate.first() is not None:
                raise ConflictError(
                    f"SLO name already used for service {slo.service_name}: {slo.slo_name}",
                    {"service_name": slo.service_name, "slo_name": slo.slo_name},
                )

            model = SLOModel(
                id=slo.id,
                team_id=slo.team_id,
                created_at=slo.created_at,
                updated_at=slo.updated_at,
                alert_state_version=slo.alert_state_version,
                **self._config_columns(slo),
                **self._alert_state_columns(slo.last_burn_alert_state),
            )
            session.add(model)
            try:
                await session.commit()
            except IntegrityError as exc:
                raise ConflictError(f"SLO already exists: {slo.id}", {"slo_id": slo.id}) from exc

        logger.info("slo_created", slo_id=slo.id, team_id=slo.team_id)

    async def get_slo(self, slo_id: str) -> SLO | None:
        """Get an SLO by ID."""
        async with self.sessions() as session:
            result = await session.execute(select(SLOModel).where(SLOModel.id == slo_id))
            model = result.scalar_one_or_none()

        if model is None:
            return None

        return self._model_to_slo(model)

    async def list_slos(self) -> list[SLO]:
        """Get all SLOs across teams."""
        async with self.sessions() as session:
            result = await session.execute(select(SLOModel).order_by(SLOModel.id))
            models = result.scalars().all()

        return [self._model_to_slo(model) for model in models]

    async def list_team_slos(self, team_id: str) -> list[SLO]:
        """Get all SLOs for a team."""
        async with self.sessions() as session:
            result = await session.execute(
                select(SLOModel)
                .where(SLOModel.team_id == team_id)
                .order_by(SLOModel.service_name, SLOModel.slo_name)
            )
            models = result.scalars().all()

        return [self._model_to_slo(model) for model in models]

    async def update_slo(self, slo: SLO) -> None:
        """Apply a user edit. Alert memory is left to the alert pipeline."""
        async with self.sessions() as session:
            result = await session.execute(select(SLOModel).where(SLOModel.id == slo.id))
            model = result.scalar_one_or_none()

            if model is None:
                raise SLONotFoundError(slo.id)

            for key, value in self._config_columns(slo).items():
                setattr(model, key, value)
            model.updated_at = utcnow()
            try:
                await session.commit()
            except IntegrityError as exc:
                raise ConflictError(
                    f"SLO name already used for service {slo.service_name}: {slo.slo_name}",
                    {"service_name": slo.service_name, "slo_name": slo.slo_name},
                ) from exc

    async def update_burn_alerts(self, slo_id: str, config: BurnAlertConfig) -> None:
        """Partial update of the burn alert configuration only."""
        async with self.sessions() as session:
            result = await session.execute(
                update(SLOModel)
                .where(SLOModel.id == slo_id)
                .values(burn_alerts=config.to_dict(), updated_at=utcnow())
                .execution_options(synchronize_session=False)
            )
            await session.commit()

        if result.rowcount == 0:  # type: ignore[attr-defined]
            raise SLONotFoundError(slo_id)

    async def delete_slo(self, slo_id: str) -> bool:
        """Delete an SLO. Its aggregate rows are left in place."""
        async with self.sessions() as session:
            result = await session.execute(select(SLOModel).where(SLOModel.id == slo_id))
            model = result.scalar_one_or_none()

            if model is None:
                return False

            await session.delete(model)
            await session.commit()

        logger.info("slo_deleted", slo_id=slo_id)
        return True

    async def compare_and_set_alert_state(
        self, slo_id: str, expected_version: int, state: BurnAlertState
    ) -> bool:
        """Atomically replace the alert memory if nobody else has since."""
        async with self.sessions() as session:
            result = await session.execute(
                update(SLOModel)
                .where(
                    SLOModel.id == slo_id,
                    SLOModel.alert_state_version == expected_version,
                )
                .values(
                    alert_state_version=expected_version + 1,
                    **self._alert_state_columns(state),
                )
                .execution_options(synchronize_session=False)
            )
            await session.commit()

        return result.rowcount == 1  # type: ignore[attr-defined]

    @staticmethod
    def _config_columns(slo: SLO) -> dict[str, Any]:
        builder = slo.sli if isinstance(slo.sli, BuilderSLI) else None
        raw = slo.sli if isinstance(slo.sli, RawSLI) else None
        return {
            "service_name": slo.service_name,
            "slo_name": slo.slo_name,
            "metric_type": slo.metric_type.value,
            "target_value": slo.target_value,
            "time_window": slo.time_window.duration,
            "source_table": slo.source_table.value,
            "filter": builder.filter if builder else None,
            "good_condition": builder.good_condition if builder else None,
            "numerator_query": raw.numerator_query if raw else None,
            "denominator_query": raw.denominator_query if raw else None,
            "burn_alerts": slo.burn_alerts.to_dict(),
        }

    @staticmethod
    def _alert_state_columns(state: BurnAlertState | None) -> dict[str, Any]:
        return {
            "last_burn_alert_severity": state.severity.value if state else None,
            "last_burn_alert_at": state.timestamp if state else None,
            "last_burn_alert_resolved": state.resolved if state else False,
        }

    def _model_to_slo(self, model: SLOModel) -> SLO:
        """Convert SQLAlchemy model to SLO object."""
        sli: BuilderSLI | RawSLI
        if model.filter is not None:
            sli = BuilderSLI(filter=model.filter, good_condition=model.good_condition or "")
        else:
            sli = RawSLI(
                numerator_query=model.numerator_query or "",
                denominator_query=model.denominator_query or "",
            )

        state = None
        if model.last_burn_alert_severity and model.last_burn_alert_at:
            state = BurnAlertState.from_dict(
                {
                    "severity": model.last_burn_alert_severity,
                    "timestamp": model.last_burn_alert_at,
                    "resolved": model.last_burn_alert_resolved,
                }
            )

        return SLO(
            id=model.id,
            team_id=model.team_id,
            service_name=model.service_name,
            slo_name=model.slo_name,
            metric_type=model.metric_type,
            target_value=model.target_value,
            time_window=TimeWindow(model.time_window),
            source_table=model.source_table,
            sli=sli,
            burn_alerts=BurnAlertConfig.from_dict(model.burn_alerts),
            last_burn_alert_state=state,
            alert_state_version=model.alert_state_version,
            created_at=as_utc(model.created_at),
            updated_at=as_utc(model.updated_at),
        )


class AggregateRepository:
    """Read/append access to the ``slo_aggregates`` table."""

    def __init__(self, engine: AsyncEngine) -> None:
        self.engine = engine

    async def sum_window(
        self, slo_id: str, start: datetime, end: datetime | None = None
    ) -> tuple[int, int]:
        """Sum numerator/denominator over buckets at or after ``start``."""
        stmt = select(
            func.coalesce(func.sum(SLOAggregateModel.numerator_count), 0),
            func.coalesce(func.sum(SLOAggregateModel.denominator_count), 0),
        ).where(
            SLOAggregateModel.slo_id == slo_id,
            SLOAggregateModel.bucket_timestamp >= start,
        )
        if end is not None:
            stmt = stmt.where(SLOAggregateModel.bucket_timestamp <= end)

        async with self.engine.connect() as conn:
            row = (await conn.execute(stmt)).one()

        return int(row[0]), int(row[1])

    async def sum_buckets(
        self, slo_id: str, start: datetime, end: datetime
    ) -> list[AggregateRow]:
        """Per-bucket sums in ``[start, end]`` ordered by bucket."""
        bucket = SLOAggregateModel.bucket_timestamp
        stmt = (
            select(
                bucket,
                func.sum(SLOAggregateModel.numerator_count),
                func.sum(SLOAggregateModel.denominator_count),
            )
            .where(
                SLOAggregateModel.slo_id == slo_id,
                bucket >= start,
                bucket <= end,
            )
            .group_by(bucket)
            .order_by(bucket.asc())
        )

        async with self.engine.connect() as conn:
            rows = (await conn.execute(stmt)).all()

        return [
            AggregateRow(
                slo_id=slo_id,
                bucket_timestamp=as_utc(ts),
                numerator_count=int(numerator),
                denominator_count=int(denominator),
            )
            for ts, numerator, denominator in rows
        ]

    async def latest_bucket(self, slo_id: str) -> datetime | None:
        stmt = select(func.max(SLOAggregateModel.bucket_timestamp)).where(
            SLOAggregateModel.slo_id == slo_id
        )
        async with self.engine.connect() as conn:
            latest = (await conn.execute(stmt)).scalar_one_or_none()
        return as_utc(latest) if latest is not None else None

    async def append(self, rows: Sequence[AggregateRow]) -> None:
        """Insert buckets in one transaction; an existing key aborts the batch."""
        if not rows:
            return

        values = [
            {
                "slo_id": row.slo_id,
                "bucket_timestamp": row.bucket_timestamp,
                "numerator_count": row.numerator_count,
                "denominator_count": row.denominator_count,
            }
            for row in rows
        ]
        try:
            async with self.engine.begin() as conn:
                await conn.execute(insert(SLOAggregateModel), values)
        except IntegrityError as exc:
            raise AggregateConflictError(
                "Aggregate bucket already written",
                {"slo_id": rows[0].slo_id, "rows": len(rows)},
            ) from exc


class RawEventRepository:
    """
    Conditional counts over raw telemetry tables.

    SLI predicates are embedded verbatim as SQL boolean expressions; the
    table name is restricted to ``SourceTable`` values.
    """

    def __init__(self, engine: AsyncEngine, timestamp_column: str = "Timestamp") -> None:
        self.engine = engine
        self.timestamp_column = timestamp_column

    async def count_conditional(
        self,
        source_table: SourceTable,
        filter: str,
        good_condition: str,
        start: datetime,
        end: datetime,
    ) -> tuple[int, int]:
        events = table(
            SourceTable(source_table).value,
            column(self.timestamp_column, DateTime(timezone=True)),
        )
        ts = events.c[self.timestamp_column]
        is_good = case((literal_column(f"({good_condition})"), 1), else_=0)

        stmt = (
            select(
                func.coalesce(func.sum(is_good), 0).label("numerator"),
                func.count().label("denominator"),
            )
            .select_from(events)
            .where(literal_column(f"({filter})"), ts >= start, ts <= end)
        )

        async with self.engine.connect() as conn:
            row = (await conn.execute(stmt)).one()

        return int(row.numerator), int(row.denominator)


class WebhookRepository:
    """Resolves burn alert channel ids to webhook destinations."""

    def __init__(self, sessions: async_sessionmaker[AsyncSession]) -> None:
        self.sessions = sessions

    async def create_webhook(self, channel: NotificationChannel) -> None:
        async with self.sessions() as session:
            session.add(
                WebhookModel(
                    id=channel.id,
                    team_id=channel.team_id,
                    name=channel.name,
                    service=channel.service,
                    url=channel.url,
                    headers=dict(channel.headers),
                )
            )
            await session.commit()

    async def get_channel(self, team_id: str, channel_id: str) -> NotificationChannel | None:
        async with self.sessions() as session:
            result = await session.execute(
                select(WebhookModel).where(
                    WebhookModel.id == channel_id,
                    WebhookModel.team_id == team_id,
                )
            )
            model = result.scalar_one_or_none()

        if model is None:
            return None

        return NotificationChannel(
            id=model.id,
            team_id=model.team_id,
            name=model.name,
            service="slack" if model.service == "slack" else "generic",
            url=model.url,
            headers=dict(model.headers or {}),
        )
