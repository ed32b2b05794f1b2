"""
SLO (Service Level Objective) evaluation.

This module handles SLO configuration, error budget and burn rate
calculation, burn alerting and aggregate maintenance.
"""

from slokeeper.slos.aggregation import AggregationWriter, floor_bucket
from slokeeper.slos.alerts import (
    AlertAction,
    AlertEvaluator,
    AlertMessage,
    BurnAlertDecision,
    render_burn_alert,
    render_recovery,
)
from slokeeper.slos.calculator import ErrorBudgetCalculator
from slokeeper.slos.memory import (
    InMemoryAggregateStore,
    InMemoryChannelDirectory,
    InMemoryRawEventStore,
    InMemorySLOStore,
)
from slokeeper.slos.models import (
    SLO,
    AggregateRow,
    AlertSeverity,
    BuilderSLI,
    BurnAlertConfig,
    BurnAlertState,
    BurnAlertThreshold,
    BurnRatePoint,
    MetricType,
    NotificationChannel,
    RawSLI,
    SLOStatus,
    SourceTable,
    StatusResult,
    TimeWindow,
)
from slokeeper.slos.notifiers import WebhookNotifier
from slokeeper.slos.pipeline import EvaluationOutcome, SLOEvaluationPipeline
from slokeeper.slos.series import BurnRateSeries, BurnRateSeriesBuilder
from slokeeper.slos.status import StatusEvaluator
from slokeeper.slos.storage import (
    AggregateRepository,
    RawEventRepository,
    SLORepository,
    WebhookRepository,
)

__all__ = [
    "AggregateRepository",
    "AggregateRow",
    "AggregationWriter",
    "AlertAction",
    "AlertEvaluator",
    "AlertMessage",
    "AlertSeverity",
    "BuilderSLI",
    "BurnAlertConfig",
    "BurnAlertDecision",
    "BurnAlertState",
    "BurnAlertThreshold",
    "BurnRatePoint",
    "BurnRateSeries",
    "BurnRateSeriesBuilder",
    "ErrorBudgetCalculator",
    "EvaluationOutcome",
    "InMemoryAggregateStore",
    "InMemoryChannelDirectory",
    "InMemoryRawEventStore",
    "InMemorySLOStore",
    "MetricType",
    "NotificationChannel",
    "RawEventRepository",
    "RawSLI",
    "SLO",
    "SLOEvaluationPipeline",
    "SLORepository",
    "SLOStatus",
    "SourceTable",
    "StatusEvaluator",
    "StatusResult",
    "TimeWindow",
    "WebhookNotifier",
    "WebhookRepository",
    "floor_bucket",
    "render_burn_alert",
    "render_recovery",
]
