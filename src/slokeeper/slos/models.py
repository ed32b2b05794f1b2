"""
SLO data models.

An SLO pairs a target percentage and a trailing time window with an SLI
definition (builder predicates or raw count queries) and an optional
burn-alert ladder.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Literal, Union

from slokeeper.core.errors import InvalidConfigurationError

_DURATION_RE = re.compile(r"^\s*(\d+)\s*([smhdw])\s*$")
_DURATION_UNITS = {
    "s": "seconds",
    "m": "minutes",
    "h": "hours",
    "d": "days",
    "w": "weeks",
}


def utcnow() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes (as returned by some SQL drivers)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class SLOStatus(str, Enum):
    """Point-in-time SLO health."""

    HEALTHY = "healthy"      # achieved >= target
    AT_RISK = "at_risk"      # 0 < budget remaining <= 10%
    BREACHED = "breached"    # budget gone


class MetricType(str, Enum):
    """Kind of SLI. Informational only; the math does not change."""

    AVAILABILITY = "availability"
    LATENCY = "latency"
    ERROR_RATE = "error_rate"


class SourceTable(str, Enum):
    """Telemetry stream an SLI is measured against."""

    LOGS = "otel_logs"
    TRACES = "otel_traces"


class AlertSeverity(str, Enum):
    """Burn alert severity levels."""

    WARNING = "warning"
    CRITICAL = "critical"


@dataclass(frozen=True)
class TimeWindow:
    """Trailing window over which compliance is measured."""

    duration: str  # Duration string (e.g., "30d", "7d", "1h")

    def __post_init__(self) -> None:
        # Fail fast on malformed windows
        self.to_timedelta()

    def to_timedelta(self) -> timedelta:
        """Convert duration string to timedelta."""
        match = _DURATION_RE.match(self.duration or "")
        if match is None:
            raise InvalidConfigurationError(
                f"Unsupported time window: {self.duration!r}",
                {"time_window": self.duration},
            )
        value, unit = int(match.group(1)), match.group(2)
        if value <= 0:
            raise InvalidConfigurationError(
                f"Time window must be positive: {self.duration!r}",
                {"time_window": self.duration},
            )
        return timedelta(**{_DURATION_UNITS[unit]: value})

    def to_milliseconds(self) -> float:
        return self.to_timedelta().total_seconds() * 1000

    def get_start_time(self, now: datetime) -> datetime:
        """Get the start time for this window ending at ``now``."""
        return now - self.to_timedelta()


@dataclass(frozen=True)
class BuilderSLI:
    """SLI defined by a population filter and a "good" predicate."""

    filter: str
    good_condition: str
    mode: Literal["builder"] = "builder"

    def __post_init__(self) -> None:
        if not self.filter or not self.good_condition:
            raise InvalidConfigurationError(
                "Builder SLI requires both filter and goodCondition"
            )


@dataclass(frozen=True)
class RawSLI:
    """SLI defined by two independent count queries."""

    numerator_query: str
    denominator_query: str
    mode: Literal["raw"] = "raw"

    def __post_init__(self) -> None:
        if not self.numerator_query or not self.denominator_query:
            raise InvalidConfigurationError(
                "Raw SLI requires both numeratorQuery and denominatorQuery"
            )


SLI = Union[BuilderSLI, RawSLI]


@dataclass(frozen=True)
class BurnAlertThreshold:
    """Burn rate at or above which an alert of ``severity`` fires."""

    burn_rate: float
    severity: AlertSeverity

    def __post_init__(self) -> None:
        if not isinstance(self.severity, AlertSeverity):
            object.__setattr__(self, "severity", _parse_severity(self.severity))
        if not (isinstance(self.burn_rate, (int, float)) and math.isfinite(self.burn_rate)):
            raise InvalidConfigurationError(
                f"Burn rate threshold must be a finite number: {self.burn_rate!r}"
            )
        if self.burn_rate <= 0:
            raise InvalidConfigurationError(
                f"Burn rate threshold must be positive: {self.burn_rate}",
                {"burn_rate": self.burn_rate},
            )

    def to_dict(self) -> dict[str, Any]:
        return {"burnRate": self.burn_rate, "severity": self.severity.value}


@dataclass(frozen=True)
class BurnAlertConfig:
    """Burn alert ladder for an SLO."""

    enabled: bool = False
    thresholds: tuple[BurnAlertThreshold, ...] = ()
    channel: str | None = None  # webhook id
    notify_on_recovery: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "thresholds", tuple(self.thresholds))
        if self.enabled and not self.thresholds:
            raise InvalidConfigurationError(
                "Burn alerts are enabled but no thresholds are configured"
            )

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> BurnAlertConfig:
        if not data:
            return cls()
        channel = data.get("channel")
        if isinstance(channel, dict):
            channel = channel.get("webhookId")
        return cls(
            enabled=bool(data.get("enabled", False)),
            thresholds=tuple(
                BurnAlertThreshold(
                    burn_rate=float(t["burnRate"]),
                    severity=_parse_severity(t["severity"]),
                )
                for t in data.get("thresholds") or []
            ),
            channel=channel or None,
            notify_on_recovery=bool(data.get("notifyOnRecovery", False)),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "enabled": self.enabled,
            "thresholds": [t.to_dict() for t in self.thresholds],
            "channel": self.channel,
            "notifyOnRecovery": self.notify_on_recovery,
        }


@dataclass(frozen=True)
class BurnAlertState:
    """Memory of the most recently fired burn alert."""

    severity: AlertSeverity
    timestamp: datetime
    resolved: bool = False

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> BurnAlertState | None:
        if not data:
            return None
        timestamp = data["timestamp"]
        if isinstance(timestamp, str):
            timestamp = datetime.fromisoformat(timestamp)
        return cls(
            severity=_parse_severity(data["severity"]),
            timestamp=as_utc(timestamp),
            resolved=bool(data.get("resolved", False)),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "severity": self.severity.value,
            "timestamp": self.timestamp.isoformat(),
            "resolved": self.resolved,
        }


@dataclass
class SLO:
    """
    Service Level Objective.

    ``target_value`` is a percentage in (0, 100]; ``time_window`` is the
    trailing window the target applies to.
    """

    id: str
    team_id: str
    service_name: str
    slo_name: str
    target_value: float
    time_window: TimeWindow
    sli: SLI
    metric_type: MetricType = MetricType.AVAILABILITY
    source_table: SourceTable = SourceTable.LOGS
    burn_alerts: BurnAlertConfig = field(default_factory=BurnAlertConfig)
    last_burn_alert_state: BurnAlertState | None = None
    alert_state_version: int = 0

    # Metadata
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def __post_init__(self) -> None:
        if isinstance(self.time_window, str):
            self.time_window = TimeWindow(self.time_window)
        self.metric_type = _parse_enum(MetricType, self.metric_type, "metricType")
        self.source_table = _parse_enum(SourceTable, self.source_table, "sourceTable")
        if not (0 < self.target_value <= 100):
            raise InvalidConfigurationError(
                f"Target must be in (0, 100]: {self.target_value}",
                {"slo_id": self.id, "target_value": self.target_value},
            )
        if not isinstance(self.sli, (BuilderSLI, RawSLI)):
            raise InvalidConfigurationError(
                "SLI must be a builder or raw definition", {"slo_id": self.id}
            )

    @property
    def is_builder(self) -> bool:
        return isinstance(self.sli, BuilderSLI)

    def error_budget_fraction(self) -> float:
        """Allowed error rate (0.001 for a 99.9% target)."""
        return 1.0 - self.target_value / 100

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SLO:
        """Create SLO from a stored configuration document."""
        return cls(
            id=str(data.get("id") or data.get("_id") or ""),
            team_id=str(data.get("teamId") or data.get("team") or ""),
            service_name=data.get("serviceName", ""),
            slo_name=data.get("sloName", ""),
            metric_type=data.get("metricType", MetricType.AVAILABILITY.value),
            target_value=float(data["targetValue"]),
            time_window=TimeWindow(data.get("timeWindow", "30d")),
            source_table=data.get("sourceTable", SourceTable.LOGS.value),
            sli=parse_sli(data),
            burn_alerts=BurnAlertConfig.from_dict(data.get("burnAlerts")),
            last_burn_alert_state=BurnAlertState.from_dict(data.get("lastBurnAlertState")),
            alert_state_version=int(data.get("alertStateVersion", 0)),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to the stored configuration document."""
        doc: dict[str, Any] = {
            "id": self.id,
            "teamId": self.team_id,
            "serviceName": self.service_name,
            "sloName": self.slo_name,
            "metricType": self.metric_type.value,
            "targetValue": self.target_value,
            "timeWindow": self.time_window.duration,
            "sourceTable": self.source_table.value,
            "burnAlerts": self.burn_alerts.to_dict(),
            "lastBurnAlertState": (
                self.last_burn_alert_state.to_dict() if self.last_burn_alert_state else None
            ),
            "alertStateVersion": self.alert_state_version,
            "createdAt": self.created_at.isoformat(),
            "updatedAt": self.updated_at.isoformat(),
        }
        if isinstance(self.sli, BuilderSLI):
            doc["filter"] = self.sli.filter
            doc["goodCondition"] = self.sli.good_condition
        else:
            doc["numeratorQuery"] = self.sli.numerator_query
            doc["denominatorQuery"] = self.sli.denominator_query
        return doc


def parse_sli(data: dict[str, Any]) -> SLI:
    """
    Build the SLI variant from document fields.

    Exactly one of the (filter, goodCondition) and
    (numeratorQuery, denominatorQuery) pairs may be present.
    """
    builder_fields = (data.get("filter"), data.get("goodCondition"))
    raw_fields = (data.get("numeratorQuery"), data.get("denominatorQuery"))
    has_builder = any(builder_fields)
    has_raw = any(raw_fields)

    if has_builder and has_raw:
        raise InvalidConfigurationError(
            "SLI mode is ambiguous: both builder and raw query fields are set"
        )
    if has_builder:
        return BuilderSLI(filter=builder_fields[0] or "", good_condition=builder_fields[1] or "")
    if has_raw:
        return RawSLI(numerator_query=raw_fields[0] or "", denominator_query=raw_fields[1] or "")
    raise InvalidConfigurationError("SLI is missing: set filter/goodCondition or raw queries")


def _parse_enum(enum_cls: type[Enum], value: Any, field_name: str) -> Any:
    try:
        return enum_cls(value)
    except ValueError as exc:
        raise InvalidConfigurationError(
            f"Unknown {field_name}: {value!r}", {field_name: value}
        ) from exc


def _parse_severity(value: Any) -> AlertSeverity:
    return _parse_enum(AlertSeverity, value, "severity")


@dataclass(frozen=True)
class AggregateRow:
    """One pre-aggregated fact per SLO per time bucket."""

    slo_id: str
    bucket_timestamp: datetime
    numerator_count: int
    denominator_count: int

    def __post_init__(self) -> None:
        if self.numerator_count < 0 or self.denominator_count < 0:
            raise InvalidConfigurationError(
                "Aggregate counts must be non-negative",
                {"slo_id": self.slo_id, "bucket": self.bucket_timestamp.isoformat()},
            )
        if self.numerator_count > self.denominator_count:
            raise InvalidConfigurationError(
                "Aggregate numerator exceeds denominator",
                {
                    "slo_id": self.slo_id,
                    "bucket": self.bucket_timestamp.isoformat(),
                    "numerator": self.numerator_count,
                    "denominator": self.denominator_count,
                },
            )


def _json_float(value: float) -> float | str:
    if math.isinf(value):
        return "Infinity" if value > 0 else "-Infinity"
    return value


@dataclass(frozen=True)
class StatusResult:
    """Read-time projection of an SLO's compliance over its trailing window."""

    slo_id: str
    achieved: float
    target: float
    error_budget_remaining: float
    burn_rate: float
    numerator: int
    denominator: int
    window_start: datetime
    window_end: datetime
    computed_at: datetime
    status: SLOStatus

    @property
    def has_data(self) -> bool:
        return self.denominator > 0 or self.numerator > 0

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for API output."""
        return {
            "slo_id": self.slo_id,
            "achieved": self.achieved,
            "target": self.target,
            "error_budget_remaining": self.error_budget_remaining,
            "burn_rate": _json_float(self.burn_rate),
            "numerator": self.numerator,
            "denominator": self.denominator,
            "window_start": self.window_start.isoformat(),
            "window_end": self.window_end.isoformat(),
            "computed_at": self.computed_at.isoformat(),
            "status": self.status.value,
        }


@dataclass(frozen=True)
class BurnRatePoint:
    """One bucket of the burn rate chart."""

    timestamp: datetime
    numerator: int
    denominator: int
    achieved: float
    burn_rate: float
    error_budget_remaining: float = 0.0  # windowed quantity; not computed per bucket

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "numerator": self.numerator,
            "denominator": self.denominator,
            "achieved": self.achieved,
            "burn_rate": _json_float(self.burn_rate),
            "error_budget_remaining": self.error_budget_remaining,
        }


@dataclass(frozen=True)
class NotificationChannel:
    """Resolved webhook destination for burn alerts."""

    id: str
    team_id: str
    url: str
    name: str = ""
    service: Literal["generic", "slack"] = "generic"
    headers: dict[str, str] = field(default_factory=dict)
