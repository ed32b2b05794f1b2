"""Tests for the in-memory stores used in development and tests."""

import asyncio
import dataclasses
from datetime import timedelta

import pytest

from slokeeper.core.errors import ConflictError, InvalidConfigurationError, SLONotFoundError
from slokeeper.slos.memory import (
    InMemoryAggregateStore,
    InMemoryChannelDirectory,
    InMemoryRawEventStore,
    InMemorySLOStore,
)
from slokeeper.slos.models import AlertSeverity, BurnAlertState, SourceTable
from slokeeper.slos.sources import AggregateSource, ChannelDirectory, RawEventSource, SLOStore


def test_protocols_satisfied():
    assert isinstance(InMemoryAggregateStore(), AggregateSource)
    assert isinstance(InMemoryRawEventStore(), RawEventSource)
    assert isinstance(InMemorySLOStore(), SLOStore)
    assert isinstance(InMemoryChannelDirectory(), ChannelDirectory)


class TestInMemorySLOStore:
    async def test_returns_copies(self, make_slo):
        store = InMemorySLOStore([make_slo()])

        slo = await store.get_slo("slo-checkout-availability")
        slo.target_value = 50.0

        assert (await store.get_slo(slo.id)).target_value == 99.9

    async def test_duplicate_rejected(self, make_slo):
        store = InMemorySLOStore([make_slo()])

        with pytest.raises(ConflictError):
            await store.create_slo(make_slo())
        with pytest.raises(ConflictError):
            await store.create_slo(make_slo(id="slo-2"))

    async def test_update_missing(self, make_slo):
        with pytest.raises(SLONotFoundError):
            await InMemorySLOStore().update_slo(make_slo())

    async def test_concurrent_cas_has_single_winner(self, make_slo, clock):
        slo = make_slo()
        store = InMemorySLOStore([slo])
        states = [
            BurnAlertState(AlertSeverity.WARNING, clock.now + timedelta(seconds=n))
            for n in range(10)
        ]

        results = await asyncio.gather(
            *(store.compare_and_set_alert_state(slo.id, 0, s) for s in states)
        )

        assert results.count(True) == 1
        assert (await store.get_slo(slo.id)).alert_state_version == 1

    async def test_update_preserves_alert_state(self, make_slo, clock):
        slo = make_slo()
        store = InMemorySLOStore([slo])
        state = BurnAlertState(AlertSeverity.CRITICAL, clock.now)
        await store.compare_and_set_alert_state(slo.id, 0, state)

        await store.update_slo(dataclasses.replace(slo, slo_name="renamed"))
        stored = await store.get_slo(slo.id)

        assert stored.slo_name == "renamed"
        assert stored.last_burn_alert_state == state
        assert stored.alert_state_version == 1


class TestInMemoryRawEventStore:
    async def test_unregistered_predicate(self, clock):
        store = InMemoryRawEventStore()
        with pytest.raises(InvalidConfigurationError):
            await store.count_conditional(
                SourceTable.LOGS, "a = 1", "b = 1", clock.now - timedelta(hours=1), clock.now
            )

    async def test_tables_are_separate(self, clock):
        store = InMemoryRawEventStore(predicates={"all": lambda e: True})
        store.add_event(SourceTable.TRACES, {"timestamp": clock.now})

        assert await store.count_conditional(
            SourceTable.LOGS, "all", "all", clock.now - timedelta(hours=1), clock.now
        ) == (0, 0)
        assert await store.count_conditional(
            SourceTable.TRACES, "all", "all", clock.now - timedelta(hours=1), clock.now
        ) == (1, 1)


async def test_channel_directory_scoped_to_team(webhook_channel):
    directory = InMemoryChannelDirectory([webhook_channel])

    assert await directory.get_channel("team-payments", "webhook-oncall") == webhook_channel
    assert await directory.get_channel("team-other", "webhook-oncall") is None
