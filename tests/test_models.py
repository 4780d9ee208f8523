"""Tests for the core data models."""

import json
from datetime import datetime

import pytest
from pydantic import ValidationError

from cycle_kernel.models.arc import Arc, ArcPhase
from cycle_kernel.models.calendar import CalendarContext
from cycle_kernel.models.config import KernelConfig, load_config
from cycle_kernel.models.context import CycleMode, ExecutionContext
from cycle_kernel.models.hook import Hook
from cycle_kernel.models.intent import CellAddress, IntentKind, WriteIntent


def _make_intent(**overrides) -> WriteIntent:
    fields = dict(
        id="wi_1",
        collection="Event_Arc_Ledger",
        kind=IntentKind.APPEND,
        values=[["a", 1]],
        created_at=datetime.utcnow(),
    )
    fields.update(overrides)
    return WriteIntent(**fields)


class TestWriteIntent:
    def test_append_intent(self):
        intent = _make_intent()
        assert intent.row_count == 1
        assert intent.cell_count == 2
        assert intent.priority == 100

    def test_intent_is_frozen(self):
        intent = _make_intent()
        with pytest.raises(ValidationError):
            intent.priority = 1

    def test_cell_requires_address(self):
        with pytest.raises(ValidationError):
            _make_intent(kind=IntentKind.CELL, values=[["x"]])

    def test_cell_must_be_single_value(self):
        with pytest.raises(ValidationError):
            _make_intent(
                kind=IntentKind.CELL,
                address=CellAddress(row=2, col=1),
                values=[["x", "y"]],
            )

    def test_append_must_not_have_address(self):
        with pytest.raises(ValidationError):
            _make_intent(address=CellAddress(row=2, col=1))

    def test_range_must_be_rectangular(self):
        with pytest.raises(ValidationError):
            _make_intent(
                kind=IntentKind.RANGE,
                address=CellAddress(row=2, col=1),
                values=[[1, 2], [3]],
            )

    def test_replace_must_have_rows(self):
        with pytest.raises(ValidationError):
            _make_intent(kind=IntentKind.REPLACE, values=[])

    def test_blank_collection_rejected(self):
        with pytest.raises(ValidationError):
            _make_intent(collection="   ")

    def test_address_is_one_based(self):
        with pytest.raises(ValidationError):
            CellAddress(row=0, col=1)


class TestArcAndHook:
    def test_arc_defaults(self):
        arc = Arc(id="F7", cycle_created=10)
        assert arc.phase == ArcPhase.EARLY
        assert arc.is_live
        assert arc.age(14) == 4
        assert arc.age(3) == 0

    def test_arc_tension_bounds(self):
        with pytest.raises(ValidationError):
            Arc(id="F7", cycle_created=1, tension=11)

    def test_resolved_arc_is_not_live(self):
        arc = Arc(id="A2", cycle_created=1, phase=ArcPhase.RESOLVED)
        assert not arc.is_live

    def test_hook_severity_bounds(self):
        with pytest.raises(ValidationError):
            Hook(id="h1", created_cycle=1, severity=0)

    def test_hook_row_not_serialized(self):
        hook = Hook(id="h1", created_cycle=1, row=5)
        assert "row" not in hook.model_dump()
        assert not hook.picked_up


class TestCalendarContext:
    def test_trigger_prefers_holiday(self):
        cal = CalendarContext(holiday="OaklandPride", is_first_friday=True)
        assert cal.trigger == "OaklandPride"

    def test_trigger_first_friday_then_creation_day(self):
        assert CalendarContext(is_first_friday=True, is_creation_day=True).trigger == "FirstFriday"
        assert CalendarContext(is_creation_day=True).trigger == "CreationDay"
        assert CalendarContext().trigger == ""


class TestExecutionContext:
    def test_sequence_increments(self):
        ctx = ExecutionContext(cycle=1)
        assert ctx.next_sequence() == 1
        assert ctx.next_sequence() == 2

    def test_seeded_rng_is_deterministic(self):
        a = ExecutionContext(cycle=5, seed=5)
        b = ExecutionContext(cycle=5, seed=5)
        assert [a.rng.random() for _ in range(3)] == [b.rng.random() for _ in range(3)]
        assert a.rng_for("weather").random() == b.rng_for("weather").random()

    def test_contexts_do_not_share_queues(self):
        a = ExecutionContext(cycle=1)
        b = ExecutionContext(cycle=2)
        a.updates.append(_make_intent())
        assert b.updates == []

    def test_mode_writes_enabled(self):
        assert CycleMode().writes_enabled
        assert not CycleMode(dry_run=True).writes_enabled
        assert not CycleMode(replay=True).writes_enabled


class TestKernelConfig:
    def test_defaults(self):
        config = KernelConfig()
        assert config.arcs.thresholds.rising_at == 3.0
        assert config.hooks.default_expires_after == 5
        assert config.collections.arc_ledger == "Event_Arc_Ledger"

    def test_load_config_partial(self, tmp_path):
        path = tmp_path / "kernel.json"
        path.write_text(json.dumps({
            "arcs": {"thresholds": {"rising_at": 2.5}},
            "cycle_schedule": "0 6 * * 1",
        }))
        config = load_config(str(path))
        assert config.arcs.thresholds.rising_at == 2.5
        assert config.arcs.thresholds.peak_at == 5.0
        assert config.cycle_schedule == "0 6 * * 1"
