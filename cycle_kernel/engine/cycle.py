"""
Cycle Runner — one cycle, start to flush.

Order per cycle:
  restore (ledger replay) -> cooldown decay -> hook lifecycle
  -> generators, in list order -> persist cooldowns + cycle seed row
  -> single flush -> clear queues

Generators are an explicit ordered list. Each gets the context and the
runner, and reaches storage only through the lifecycles and the queue.
"""

import asyncio
import hashlib
import logging
import time
from contextlib import contextmanager
from datetime import datetime
from typing import Callable, Iterator, List, Optional, Protocol

from croniter import croniter

from cycle_kernel.cooldowns.ledger import CooldownLedger, active_summary
from cycle_kernel.execution.executor import IntentExecutor, PersistenceAbortError
from cycle_kernel.intents.queue import clear_all_intents, intent_summary
from cycle_kernel.ledger.replay import LedgerReplay, find_cycle_seed
from cycle_kernel.ledger.schema import CYCLE_SEED_HEADERS, HeaderIndex, parse_int
from cycle_kernel.ledger.writer import queue_ledger_rows
from cycle_kernel.lifecycle.arcs import ArcLifecycle, ArcPressure, CycleSignals
from cycle_kernel.lifecycle.hooks import HookLifecycle, HookLifecycleReport
from cycle_kernel.models.calendar import CalendarContext
from cycle_kernel.models.config import KernelConfig
from cycle_kernel.models.context import CycleMode, ExecutionContext
from cycle_kernel.models.execution import CycleReport, ReplayComparison
from cycle_kernel.table_store.store import TableStore

logger = logging.getLogger(__name__)


class Generator(Protocol):
    """Anything that produces a cycle's material."""

    name: str

    def advance(self, ctx: ExecutionContext, kernel: "CycleRunner") -> None: ...


class ArcPressureGenerator:
    """Advances every live arc that has not changed yet this cycle."""

    name = "arc-pressure"

    def __init__(
        self,
        pressure: Optional[ArcPressure] = None,
        signals_for: Optional[Callable[[ExecutionContext], CycleSignals]] = None,
    ):
        self.pressure = pressure or ArcPressure()
        self.signals_for = signals_for

    def advance(self, ctx: ExecutionContext, kernel: "CycleRunner") -> None:
        signals = self.signals_for(ctx) if self.signals_for else CycleSignals()
        loads = kernel.arcs.neighborhood_loads(ctx)
        for arc in sorted(ctx.live_arcs(), key=lambda a: a.id):
            if arc.id in ctx.advanced_arc_ids:
                continue
            pressure = self.pressure.estimate(
                arc,
                signals,
                ctx.calendar,
                loads.get(arc.neighborhood or "Downtown", 0),
                ctx.cycle,
            )
            kernel.arcs.advance(ctx, arc, pressure)


def cycle_checksum(ctx: ExecutionContext) -> str:
    """
    Fingerprint of a cycle's outcome. A faithful replay reproduces it.
    Cooldowns are left out: the stored table only holds the latest state.
    """
    arcs = ",".join(
        f"{a.id}:{a.phase.value}:{a.tension:.2f}"
        for a in sorted(ctx.live_arcs(), key=lambda a: a.id)
    )
    parts = [str(ctx.seed), ctx.calendar.holiday, arcs, str(len(ctx.hooks))]
    return hashlib.sha256("|".join(parts).encode()).hexdigest()[:16]


class CycleRunner:
    """Runs cycles against one table store. One cycle at a time."""

    def __init__(
        self,
        store: TableStore,
        config: Optional[KernelConfig] = None,
        generators: Optional[List[Generator]] = None,
    ):
        self.store = store
        self.config = config or KernelConfig()
        self.ledger = LedgerReplay(store, self.config)
        self.executor = IntentExecutor(store)
        self.hooks = HookLifecycle(self.config)
        self.arcs = ArcLifecycle(self.config, hooks=self.hooks)
        self.cooldowns = CooldownLedger(self.config)
        self.generators: List[Generator] = list(
            generators if generators is not None else [ArcPressureGenerator()]
        )
        self.history: List[CycleReport] = []
        self._running = False

    @property
    def status(self) -> str:
        return "running" if self._running else "stopped"

    def reconfigure(self, config: KernelConfig) -> None:
        """Swap configuration. Takes effect from the next cycle."""
        self.config = config
        self.ledger.config = config
        self.hooks.config = config
        self.arcs.config = config
        self.cooldowns.config = config

    def next_cycle_number(self) -> int:
        """One past the highest cycle recorded in the seed log or arc ledger."""
        names = self.config.collections
        highest = 0
        for collection, column in (
            (names.cycle_seeds, "CycleId"),
            (names.arc_ledger, "Cycle"),
        ):
            rows = self.ledger.read_rows(collection)
            if len(rows) < 2:
                continue
            index = HeaderIndex(rows[0])
            for row in rows[1:]:
                highest = max(highest, parse_int(index.get(row, column)) or 0)
        return highest + 1

    @contextmanager
    def _phase(self, ctx: ExecutionContext, name: str) -> Iterator[None]:
        start = time.monotonic()
        try:
            yield
        finally:
            if ctx.mode.profile:
                ctx.phase_timings_ms[name] = round((time.monotonic() - start) * 1000, 3)

    def begin_cycle(
        self,
        cycle: Optional[int] = None,
        mode: Optional[CycleMode] = None,
        calendar: Optional[CalendarContext] = None,
    ) -> ExecutionContext:
        """Build the cycle's context and restore working state from the store."""
        mode = mode or CycleMode()
        if mode.replay:
            if cycle is None:
                cycle = mode.replay_cycle
            if cycle is None:
                raise ValueError("Replay needs a cycle number")
            mode = mode.model_copy(update={"replay_cycle": cycle})
        if cycle is None:
            cycle = self.next_cycle_number()

        seed = cycle
        if mode.replay:
            record = find_cycle_seed(
                self.ledger.read_rows(self.config.collections.cycle_seeds), cycle
            )
            stored = parse_int(record.get("Seed")) if record else None
            if stored is not None:
                seed = stored
            else:
                logger.warning("No stored seed for cycle %d; replaying with seed %d", cycle, seed)

        ctx = ExecutionContext(
            cycle=cycle,
            mode=mode,
            calendar=calendar or CalendarContext(),
            seed=seed,
        )
        with self._phase(ctx, "restore"):
            self.ledger.restore(ctx)
        return ctx

    def run_cycle(
        self,
        cycle: Optional[int] = None,
        mode: Optional[CycleMode] = None,
        calendar: Optional[CalendarContext] = None,
    ) -> CycleReport:
        ctx = self.begin_cycle(cycle, mode, calendar)
        logger.info(
            "Cycle %d starting (dry_run=%s, replay=%s, strict=%s)",
            ctx.cycle,
            ctx.mode.dry_run,
            ctx.mode.replay,
            ctx.mode.strict,
        )

        with self._phase(ctx, "cooldowns"):
            self.cooldowns.decay(ctx)
        with self._phase(ctx, "hooks"):
            hook_report = self.hooks.run(ctx)

        ran: List[str] = []
        errors: List[str] = []
        for generator in self.generators:
            with self._phase(ctx, generator.name):
                try:
                    generator.advance(ctx, self)
                    ran.append(generator.name)
                except Exception as e:
                    logger.exception("Generator %s failed in cycle %d", generator.name, ctx.cycle)
                    errors.append(f"{generator.name}: {e}")
                    if ctx.mode.strict:
                        self.abort_cycle(ctx)
                        raise

        return self.finish_cycle(ctx, hook_report, ran, errors)

    def finish_cycle(
        self,
        ctx: ExecutionContext,
        hook_report: Optional[HookLifecycleReport] = None,
        generators_ran: Optional[List[str]] = None,
        generator_errors: Optional[List[str]] = None,
    ) -> CycleReport:
        """Persist end-of-cycle state, flush once, clear the queues."""
        hook_report = hook_report or HookLifecycleReport(cycle=ctx.cycle)
        checksum = cycle_checksum(ctx)
        live = len(ctx.live_arcs())
        cooldown_summary = active_summary(ctx.cooldowns)

        self.cooldowns.persist(ctx)
        queue_ledger_rows(
            ctx,
            self.config.collections.cycle_seeds,
            CYCLE_SEED_HEADERS,
            [{
                "CycleId": ctx.cycle,
                "Seed": ctx.seed,
                "Timestamp": datetime.utcnow().isoformat(),
                "Holiday": ctx.calendar.holiday,
                "LiveArcs": live,
                "HookCount": len(ctx.hooks),
                "ActiveCooldowns": cooldown_summary,
                "Checksum": checksum,
            }],
            reason=f"Cycle {ctx.cycle} seed",
            domain="audit",
            log=True,
        )

        summary = intent_summary(ctx)
        try:
            with self._phase(ctx, "flush"):
                execution = self.executor.flush(ctx)
        except PersistenceAbortError:
            self.abort_cycle(ctx)
            raise

        comparison = self.compare_replay(ctx, checksum) if ctx.mode.replay else None
        clear_all_intents(ctx)

        report = CycleReport(
            cycle=ctx.cycle,
            dry_run=ctx.mode.dry_run,
            replay=ctx.mode.replay,
            seed=ctx.seed,
            live_arcs=live,
            arcs_created=sum(1 for a in ctx.arcs.values() if a.cycle_created == ctx.cycle),
            arc_transitions=[t.model_dump(mode="json") for t in ctx.arc_transitions],
            hooks_processed=hook_report.processed,
            hooks_expired=len(hook_report.expired),
            hooks_decayed=len(hook_report.decayed),
            hooks_archived=len(hook_report.archived),
            active_cooldowns=cooldown_summary,
            generators_ran=generators_ran or [],
            generator_errors=generator_errors or [],
            intent_summary=summary,
            execution=execution,
            replay_comparison=comparison,
            phase_timings_ms=dict(ctx.phase_timings_ms),
        )
        self.history.append(report)
        logger.info(
            "Cycle %d finished: %d live arcs, %d transitions, cooldowns %s",
            ctx.cycle,
            live,
            len(ctx.arc_transitions),
            cooldown_summary,
        )
        return report

    def abort_cycle(self, ctx: ExecutionContext) -> None:
        """Drop everything the cycle queued."""
        dropped = clear_all_intents(ctx)
        logger.warning("Cycle %d aborted; %d queued intents discarded", ctx.cycle, dropped)

    def compare_replay(self, ctx: ExecutionContext, checksum: Optional[str] = None) -> ReplayComparison:
        """Check a replayed cycle against what the original run recorded."""
        current = checksum or cycle_checksum(ctx)
        record = find_cycle_seed(
            self.ledger.read_rows(self.config.collections.cycle_seeds), ctx.cycle
        )
        if record is None:
            return ReplayComparison(
                cycle=ctx.cycle,
                match=False,
                current_checksum=current,
                error=f"No seed record for cycle {ctx.cycle}",
            )

        original = str(record.get("Checksum", ""))
        differences: List[str] = []
        if original != current:
            expected = {
                "Holiday": ctx.calendar.holiday,
                "LiveArcs": len(ctx.live_arcs()),
                "HookCount": len(ctx.hooks),
            }
            for column, value in expected.items():
                if str(record.get(column, "")) != str(value):
                    differences.append(f"{column}: {record.get(column)} -> {value}")
            if not differences:
                differences.append("Arc state differs")

        return ReplayComparison(
            cycle=ctx.cycle,
            match=original == current,
            original_checksum=original or None,
            current_checksum=current,
            differences=differences,
        )

    def _seconds_until_next_cycle(self, now: datetime) -> float:
        schedule = self.config.cycle_schedule
        if schedule:
            next_run = croniter(schedule, now).get_next(datetime)
            return max(0.0, (next_run - now).total_seconds())
        return float(self.config.heartbeat_interval_seconds)

    async def run_async(
        self,
        stop_event: Optional[asyncio.Event] = None,
        calendar_for: Optional[Callable[[int], CalendarContext]] = None,
    ) -> None:
        """Run cycles on the configured schedule until stopped."""
        self._running = True
        if stop_event is None:
            stop_event = asyncio.Event()

        try:
            while not stop_event.is_set():
                delay = self._seconds_until_next_cycle(datetime.utcnow())
                try:
                    await asyncio.wait_for(stop_event.wait(), timeout=delay)
                    break
                except asyncio.TimeoutError:
                    pass
                cycle = self.next_cycle_number()
                calendar = calendar_for(cycle) if calendar_for else None
                self.run_cycle(cycle=cycle, calendar=calendar)
        finally:
            self._running = False
