from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import (
    JSON,
    BigInteger,
    DateTime,
    Float,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


# SLO configuration store


class SLOModel(Base):
    """SLO (Service Level Objective) definition."""

    __tablename__ = "slos"

    id: Mapped[str] = mapped_column(String(255), primary_key=True)
    team_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    service_name: Mapped[str] = mapped_column(String(255), nullable=False)
    slo_name: Mapped[str] = mapped_column(String(255), nullable=False)
    metric_type: Mapped[str] = mapped_column(String(50), nullable=False, default="availability")
    target_value: Mapped[float] = mapped_column(Float, nullable=False)
    time_window: Mapped[str] = mapped_column(String(50), nullable=False)
    source_table: Mapped[str] = mapped_column(String(50), nullable=False, default="otel_logs")

    # Builder mode
    filter: Mapped[str | None] = mapped_column(Text)
    good_condition: Mapped[str | None] = mapped_column(Text)
    # Raw mode
    numerator_query: Mapped[str | None] = mapped_column(Text)
    denominator_query: Mapped[str | None] = mapped_column(Text)

    burn_alerts: Mapped[dict[str, Any] | None] = mapped_column(JSON)

    # Written only by the alert pipeline, guarded by alert_state_version
    last_burn_alert_severity: Mapped[str | None] = mapped_column(String(20))
    last_burn_alert_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    last_burn_alert_resolved: Mapped[bool] = mapped_column(default=False, nullable=False)
    alert_state_version: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )

    __table_args__ = (
        UniqueConstraint("team_id", "service_name", "slo_name", name="uq_slos_team_service_name"),
    )


class WebhookModel(Base):
    """Notification destination referenced by burn alert configs."""

    __tablename__ = "webhooks"

    id: Mapped[str] = mapped_column(String(255), primary_key=True)
    team_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    service: Mapped[str] = mapped_column(String(50), nullable=False, default="generic")
    url: Mapped[str] = mapped_column(Text, nullable=False)
    headers: Mapped[dict[str, str] | None] = mapped_column(JSON)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )


# Telemetry aggregate store


class SLOAggregateModel(Base):
    """One (numerator, denominator) fact per SLO per bucket. Append-only."""

    __tablename__ = "slo_aggregates"

    id: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True
    )
    # No FK to slos: deleting an SLO orphans its history
    slo_id: Mapped[str] = mapped_column(String(255), nullable=False)
    bucket_timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    numerator_count: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    denominator_count: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    __table_args__ = (
        UniqueConstraint("slo_id", "bucket_timestamp", name="uq_slo_aggregates_bucket"),
        Index("idx_slo_aggregates_slo_bucket", "slo_id", "bucket_timestamp"),
    )
