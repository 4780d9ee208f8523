"""Tests for the cooldown ledger."""

import pytest

from cycle_kernel.cooldowns.ledger import (
    CooldownLedger,
    active_summary,
    apply,
    calendar_domain_effects,
    decay,
    is_suppressed,
    suppression_map,
)
from cycle_kernel.models.calendar import CalendarContext
from cycle_kernel.models.context import ExecutionContext
from cycle_kernel.models.intent import IntentKind


class TestDecay:
    def test_decay_by_one(self):
        assert decay({"CIVIC": 3, "SPORTS": 1}) == {"CIVIC": 2, "SPORTS": 0}

    def test_boosted_decay_by_two(self):
        assert decay({"SPORTS": 3, "CIVIC": 3}, boosted=["SPORTS"]) == {"SPORTS": 1, "CIVIC": 2}

    @pytest.mark.parametrize("start", [0, 1, 2, 5])
    def test_never_below_zero(self, start):
        cooldowns = {"A": start, "B": start}
        for i in range(8):
            cooldowns = decay(cooldowns, boosted=["A"] if i % 2 else [])
            assert all(v >= 0 for v in cooldowns.values())
        assert cooldowns == {"A": 0, "B": 0}

    def test_decay_returns_new_dict(self):
        original = {"CIVIC": 2}
        decay(original)
        assert original == {"CIVIC": 2}


class TestApply:
    def test_base_duration(self):
        cooldowns = {}
        assert apply(cooldowns, "civic") == 2
        assert cooldowns == {"CIVIC": 2}

    def test_severity(self):
        assert apply({}, "CIVIC", "critical") == 3
        assert apply({}, "CIVIC", "Major") == 3
        assert apply({}, "CIVIC", "low") == 1

    def test_priority_domain_floor_one(self):
        assert apply({}, "HEALTH", "low", is_priority_domain=True) == 1
        assert apply({}, "HEALTH", "high", is_priority_domain=True) == 2

    def test_long_cooldown_unless_boosted(self):
        assert apply({}, "CULTURE", is_long_cooldown_domain=True) == 3
        assert apply({}, "CULTURE", is_long_cooldown_domain=True, is_boosted=True) == 1

    def test_boosted_floor_zero(self):
        assert apply({}, "SPORTS", "low", is_boosted=True) == 0

    def test_suppressed_adds_one(self):
        assert apply({}, "NIGHTLIFE", is_suppressed=True) == 3

    def test_never_shortens(self):
        cooldowns = {"CIVIC": 5}
        apply(cooldowns, "CIVIC", "low")
        assert cooldowns["CIVIC"] == 5

    def test_is_suppressed(self):
        cooldowns = {"CIVIC": 1, "SPORTS": 0}
        assert is_suppressed(cooldowns, "civic")
        assert not is_suppressed(cooldowns, "SPORTS")
        assert not is_suppressed(cooldowns, "ARTS")


class TestCalendarEffects:
    def test_plain_day(self):
        effects = calendar_domain_effects(CalendarContext())
        assert effects.boosted == []
        assert effects.suppressed == []

    def test_oakland_pride(self):
        effects = calendar_domain_effects(
            CalendarContext(holiday="OaklandPride", holiday_priority="oakland")
        )
        assert effects.boosted == ["FESTIVAL", "HOLIDAY", "COMMUNITY", "CULTURE", "NIGHTLIFE"]

    def test_quiet_holiday_suppresses(self):
        effects = calendar_domain_effects(CalendarContext(holiday="Thanksgiving"))
        assert effects.suppressed == ["NIGHTLIFE", "CRIME"]

    def test_first_friday_and_playoffs(self):
        effects = calendar_domain_effects(
            CalendarContext(is_first_friday=True, sports_season="playoffs")
        )
        assert set(effects.boosted) == {"SPORTS", "ARTS", "CULTURE", "NIGHTLIFE"}

    def test_creation_day(self):
        effects = calendar_domain_effects(CalendarContext(is_creation_day=True))
        assert effects.boosted == ["CIVIC", "COMMUNITY"]


class TestSummaries:
    def test_suppression_map_both_cases(self):
        assert suppression_map({"CIVIC": 1, "ARTS": 0}) == {"CIVIC": True, "civic": True}

    def test_active_summary(self):
        assert active_summary({"SPORTS": 2, "CIVIC": 1, "ARTS": 0}) == "SPORTS:2, CIVIC:1"
        assert active_summary({}) == "none"


class TestCooldownLedger:
    def setup_method(self):
        self.ledger = CooldownLedger()

    def test_decay_uses_calendar(self):
        ctx = ExecutionContext(
            cycle=4,
            calendar=CalendarContext(sports_season="championship"),
            cooldowns={"SPORTS": 3, "CIVIC": 3},
        )
        self.ledger.decay(ctx)
        assert ctx.cooldowns == {"SPORTS": 1, "CIVIC": 2}

    def test_apply_event_classifies_domain(self):
        ctx = ExecutionContext(cycle=4)
        assert self.ledger.apply_event(ctx, "safety", "high") == 2
        assert self.ledger.apply_event(ctx, "micro") == 3
        assert ctx.cooldowns == {"SAFETY": 2, "MICRO": 3}

    def test_apply_events_current_cycle_only(self):
        ctx = ExecutionContext(cycle=4)
        applied = self.ledger.apply_events(ctx, [
            {"domain": "CIVIC", "cycle": 4},
            {"domain": "SPORTS", "cycle": 3},
            {"domain": "ARTS"},
            {"domain": ""},
        ])
        assert applied == 2
        assert set(ctx.cooldowns) == {"CIVIC", "ARTS"}

    def test_persist_queues_replace(self):
        ctx = ExecutionContext(cycle=4, cooldowns={"SPORTS": 1, "CIVIC": 2})
        intent = self.ledger.persist(ctx)
        assert intent.kind == IntentKind.REPLACE
        assert intent.collection == "Domain_Cooldowns"
        assert intent.values == (
            ("Domain", "CyclesRemaining", "UpdatedCycle"),
            ("CIVIC", 2, 4),
            ("SPORTS", 1, 4),
        )
        assert ctx.replace_ops == [intent]
