"""Tests for the hook lifecycle."""

import pytest

from cycle_kernel.engine.cycle import CycleRunner
from cycle_kernel.execution.executor import IntentExecutor
from cycle_kernel.ledger.replay import load_hooks
from cycle_kernel.ledger.schema import HOOK_ARCHIVE_HEADERS, HOOK_DECK_HEADERS, HeaderIndex
from cycle_kernel.lifecycle.hooks import (
    HookLifecycle,
    check_expiration,
    decay_priority,
    update_age,
)
from cycle_kernel.models.context import ExecutionContext
from cycle_kernel.models.hook import Hook
from cycle_kernel.models.intent import IntentKind
from cycle_kernel.table_store.store import InMemoryTableStore


def _make_hook(hook_id: str = "h1", created_cycle: int = 40, row: int = 2, **kwargs) -> Hook:
    return Hook(id=hook_id, created_cycle=created_cycle, row=row, **kwargs)


def _make_ctx(cycle: int, hooks=(), archive: bool = False) -> ExecutionContext:
    ctx = ExecutionContext(cycle=cycle)
    ctx.collection_headers["Story_Hook_Deck"] = list(HOOK_DECK_HEADERS)
    ctx.existing_collections.add("Story_Hook_Deck")
    if archive:
        ctx.collection_headers["Story_Hook_Archive"] = list(HOOK_ARCHIVE_HEADERS)
        ctx.existing_collections.add("Story_Hook_Archive")
    for hook in hooks:
        ctx.hooks[hook.id] = hook
    return ctx


class TestPureFunctions:
    def test_expiration_scenario(self):
        hook = Hook(id="h1", created_cycle=40, expires_after=5)

        update_age(hook, 44)
        check_expiration(hook)
        assert hook.age == 4
        assert not hook.is_expired

        update_age(hook, 45)
        assert check_expiration(hook) is True
        assert hook.age == 5
        assert hook.is_expired

    def test_expired_is_never_cleared(self):
        hook = Hook(id="h1", created_cycle=40, expires_after=2)
        update_age(hook, 43)
        check_expiration(hook)
        for cycle in (44, 30, 41, 50):
            update_age(hook, cycle)
            assert check_expiration(hook) is False
            assert hook.is_expired

    def test_future_created_cycle_clamps_age(self):
        hook = Hook(id="h1", created_cycle=50)
        assert update_age(hook, 45) == 0

    def test_no_decay_until_age_three(self):
        hook = Hook(id="h1", created_cycle=1, severity=5, age=2)
        assert decay_priority(hook) is False
        assert hook.severity == 5

    def test_decay_formula(self):
        hook = Hook(id="h1", created_cycle=1, severity=5, age=10)
        assert decay_priority(hook) is True
        assert hook.severity == 4

    def test_decay_floor_and_monotonic(self):
        hook = Hook(id="h1", created_cycle=0, severity=3)
        seen = []
        for cycle in range(0, 60, 5):
            update_age(hook, cycle)
            decay_priority(hook)
            seen.append(hook.severity)
        assert seen == sorted(seen, reverse=True)
        assert seen[-1] == 1


class TestHookLifecycleRun:
    def setup_method(self):
        self.lifecycle = HookLifecycle()
        self.deck = HeaderIndex(HOOK_DECK_HEADERS)

    def _cells(self, ctx, column):
        col = self.deck.column(column)
        return {
            i.address.row: i.values[0][0]
            for i in ctx.updates
            if i.kind == IntentKind.CELL and i.address.col == col
        }

    def test_run_queues_age_expiry_and_severity(self):
        ctx = _make_ctx(45, [
            _make_hook("h1", 40, row=2, severity=5),
            _make_hook("h2", 44, row=3),
        ])
        report = self.lifecycle.run(ctx)

        assert report.processed == 2
        assert report.expired == ["h1"]
        assert report.decayed == []       # floor(5 * 0.1) == 0
        assert self._cells(ctx, "HookAge") == {2: 5, 3: 1}
        assert self._cells(ctx, "IsExpired") == {2: True}

    def test_unstored_hooks_skipped(self):
        ctx = _make_ctx(45, [_make_hook("new", 45, row=None)])
        report = self.lifecycle.run(ctx)
        assert report.processed == 0
        assert ctx.updates == []

    def test_expired_hooks_stay_in_place_without_archive(self):
        ctx = _make_ctx(45, [_make_hook("h1", 40)])
        report = self.lifecycle.run(ctx)
        assert report.archived == []
        assert ctx.hooks["h1"].is_expired
        assert not ctx.hooks["h1"].archived

    def test_archive_appends_and_flags(self):
        ctx = _make_ctx(45, [_make_hook("h1", 40)], archive=True)
        report = self.lifecycle.run(ctx)

        assert report.archived == ["h1"]
        appends = [i for i in ctx.updates if i.collection == "Story_Hook_Archive"]
        assert len(appends) == 1
        assert appends[0].row_count == 1
        archive = HeaderIndex(HOOK_ARCHIVE_HEADERS)
        assert archive.get(appends[0].values[0], "HookId") == "h1"
        assert archive.get(appends[0].values[0], "ArchivedCycle") == 45
        assert self._cells(ctx, "Archived") == {2: True}

    def test_archive_is_idempotent(self):
        hook = _make_hook("h1", 40, is_expired=True)
        ctx = _make_ctx(45, [hook], archive=True)
        first = self.lifecycle.archive(ctx, [hook])
        second = self.lifecycle.archive(ctx, [hook])
        assert [h.id for h in first] == ["h1"]
        assert second == []

    def test_archived_hook_not_archived_again_next_cycle(self):
        hook = _make_hook("h1", 40, is_expired=True, archived=True)
        ctx = _make_ctx(46, [hook], archive=True)
        report = self.lifecycle.run(ctx)
        assert report.archived == []
        assert not [i for i in ctx.updates if i.collection == "Story_Hook_Archive"]

    def test_missing_column_skipped(self):
        ctx = _make_ctx(45, [_make_hook("h1", 40)])
        ctx.collection_headers["Story_Hook_Deck"] = ["HookId", "CreatedCycle", "HookAge"]
        report = self.lifecycle.run(ctx)
        assert "IsExpired" in report.skipped_columns
        assert ctx.hooks["h1"].is_expired


class TestCreateAndPickup:
    def setup_method(self):
        self.lifecycle = HookLifecycle()

    def test_create_queues_deck_row(self):
        ctx = _make_ctx(7)
        hook = self.lifecycle.create(ctx, "Council vote looms", domain="CIVIC", severity=6)
        assert hook.created_cycle == 7
        assert hook.expires_after == 5
        assert ctx.hooks[hook.id] is hook
        assert len(ctx.updates) == 1
        assert ctx.updates[0].domain == "media"
        assert HeaderIndex(HOOK_DECK_HEADERS).get(ctx.updates[0].values[0], "HookText") == "Council vote looms"

    def test_create_on_missing_deck_adds_header(self):
        ctx = ExecutionContext(cycle=1)
        self.lifecycle.create(ctx, "First hook")
        intent = ctx.updates[0]
        assert intent.row_count == 2
        assert list(intent.values[0]) == HOOK_DECK_HEADERS

    def test_pickup_once(self):
        ctx = _make_ctx(42, [_make_hook("h1", 40)])
        assert self.lifecycle.mark_picked_up(ctx, "h1", 42) is True
        assert self.lifecycle.mark_picked_up(ctx, "h1", 43) is False
        assert ctx.hooks["h1"].pickup_cycle == 42
        assert len(ctx.updates) == 1

    def test_pickup_unknown_hook(self):
        ctx = _make_ctx(42)
        with pytest.raises(KeyError):
            self.lifecycle.mark_picked_up(ctx, "missing")

    def test_picked_up_hook_still_ages_and_expires(self):
        ctx = _make_ctx(45, [_make_hook("h1", 40, pickup_cycle=41)])
        report = self.lifecycle.run(ctx)
        assert report.expired == ["h1"]

    def test_pickup_of_hook_created_this_cycle_is_stored(self):
        store = InMemoryTableStore()
        ctx = ExecutionContext(cycle=3)
        hook = self.lifecycle.create(ctx, "Fresh hook", domain="CIVIC")
        self.lifecycle.create(ctx, "Another hook")

        assert self.lifecycle.mark_picked_up(ctx, hook.id) is True
        assert len(ctx.updates) == 2

        IntentExecutor(store).flush(ctx)
        loaded = load_hooks(store.rows("Story_Hook_Deck"), 4)
        assert loaded[hook.id].pickup_cycle == 3
        assert loaded[hook.id].text == "Fresh hook"
        assert len(loaded) == 2


class TestArchiveAcrossCycles:
    def setup_method(self):
        self.lifecycle = HookLifecycle()

    def test_id_already_in_archive_is_skipped(self):
        hook = _make_hook("h1", 40, is_expired=True)
        ctx = _make_ctx(46, [hook], archive=True)
        ctx.archived_hook_ids.add("h1")
        assert self.lifecycle.archive(ctx, [hook]) == []
        assert ctx.updates == []

    def test_archive_records_id(self):
        hook = _make_hook("h1", 40, is_expired=True)
        ctx = _make_ctx(45, [hook], archive=True)
        self.lifecycle.archive(ctx, [hook])
        assert ctx.archived_hook_ids == {"h1"}

    def test_deck_without_archived_column_archives_once(self):
        header = [h for h in HOOK_DECK_HEADERS if h != "Archived"]
        deck = HeaderIndex(header)
        store = InMemoryTableStore({
            "Story_Hook_Deck": [
                header,
                deck.encode({"HookId": "h1", "CreatedCycle": 1, "ExpiresAfter": 5}),
            ],
            "Story_Hook_Archive": [list(HOOK_ARCHIVE_HEADERS)],
        })
        runner = CycleRunner(store, generators=[])
        for cycle in (6, 7, 8):
            runner.run_cycle(cycle=cycle)

        archive = HeaderIndex(HOOK_ARCHIVE_HEADERS)
        ids = [archive.get(r, "HookId") for r in store.rows("Story_Hook_Archive")[1:]]
        assert ids == ["h1"]
        assert [r.hooks_archived for r in runner.history] == [1, 0, 0]
