"""
Arc Lifecycle — the phase state machine for multi-cycle story arcs.

States: early -> rising -> peak -> decline -> resolved

Behavioral Contract:
- Linear. At most one phase step per advance, never backwards, never a skip.
- resolved is terminal. A resolved id is retired and never created again.
- An arc changes at most once per cycle through advance. Creating it
  counts as its change for that cycle.
- Every create / advance / resolve queues exactly one append carrying the
  arc's full ledger row. Ledger replay depends on those rows.
- Phase thresholds and tension pressure are configuration, not contract.
"""

import logging
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel

from cycle_kernel.ledger.schema import ARC_LEDGER_HEADERS, arc_record
from cycle_kernel.ledger.writer import queue_ledger_rows
from cycle_kernel.lifecycle.hooks import HookLifecycle
from cycle_kernel.models.arc import Arc, ArcPhase, ArcTransition
from cycle_kernel.models.calendar import CalendarContext
from cycle_kernel.models.config import KernelConfig, PhaseThresholds
from cycle_kernel.models.context import ExecutionContext

logger = logging.getLogger(__name__)


class ArcLifecycleError(Exception):
    """An arc operation that would break the lifecycle rules."""


# Hook severity when an arc enters a phase
PHASE_HOOK_SEVERITY = {
    ArcPhase.PEAK: 7,
    ArcPhase.DECLINE: 6,
}
DEFAULT_PHASE_HOOK_SEVERITY = 5
RESOLVED_HOOK_SEVERITY = 7


def next_phase(phase: ArcPhase, tension: float, thresholds: PhaseThresholds) -> ArcPhase:
    """The phase after one step at this tension. Unchanged if no threshold is crossed."""
    if phase == ArcPhase.EARLY and tension >= thresholds.rising_at:
        return ArcPhase.RISING
    if phase == ArcPhase.RISING and tension >= thresholds.peak_at:
        return ArcPhase.PEAK
    if phase == ArcPhase.PEAK and tension <= thresholds.decline_at:
        return ArcPhase.DECLINE
    if phase == ArcPhase.DECLINE and tension <= thresholds.resolve_at:
        return ArcPhase.RESOLVED
    return phase


class CycleSignals(BaseModel):
    """Cycle-wide signals that push arc tension up or down."""

    cycle_weight: str = "low-signal"        # "low-signal" | "medium-signal" | "high-signal"
    shock_flag: str = "none"
    extra: Dict[str, float] = {}            # Per arc type nudges, e.g. {"rivalry": 0.3}

    @property
    def shocked(self) -> bool:
        return bool(self.shock_flag) and self.shock_flag != "none"


class ArcPressure:
    """
    Estimates how much an arc's tension should move this cycle.

    Factors: cycle weight, shocks, arc-type response to the calendar,
    crowding in the same neighborhood, passive decay and age fatigue.
    """

    def estimate(
        self,
        arc: Arc,
        signals: CycleSignals,
        calendar: CalendarContext,
        neighborhood_load: int,
        cycle: int,
    ) -> float:
        p = 0.0
        holiday = calendar.holiday
        on_holiday = holiday != "none"

        if signals.cycle_weight == "high-signal":
            p += 1
        elif signals.cycle_weight == "medium-signal":
            p += 0.5
        if signals.shocked:
            p += 2

        if arc.type == "crisis":
            if signals.shocked:
                p += 1
            elif signals.cycle_weight != "high-signal":
                p -= 0.5
        elif arc.type == "pattern-wave":
            p += 0.25
        elif arc.type == "cultural-moment" and calendar.is_first_friday:
            p += 1
        elif arc.type == "festival":
            if on_holiday:
                p += 1 if calendar.holiday_priority == "oakland" else 0.5
            else:
                p -= 0.5
        elif arc.type == "celebration":
            if calendar.holiday_priority == "major":
                p += 1
            else:
                p += 0.3 if on_holiday else -0.4
        elif arc.type == "sports-fever":
            p += {"championship": 1.5, "playoffs": 1, "late-season": 0.5}.get(
                calendar.sports_season, -0.5
            )
        elif arc.type == "parade":
            p += 0.5 if on_holiday else -1
        elif arc.type == "arts-walk":
            p += 2 if calendar.is_first_friday else -0.5
        elif arc.type == "heritage":
            p += 2 if calendar.is_creation_day else -0.3

        p += signals.extra.get(arc.type, 0.0)

        if holiday in ("NewYearsEve", "OaklandPride", "ArtSoulFestival"):
            p += 0.3
        if holiday in ("Thanksgiving", "Easter") and arc.type not in ("community", "celebration"):
            p -= 0.3

        if neighborhood_load > 1:
            p += 0.5 * (neighborhood_load - 1)

        if signals.cycle_weight != "high-signal" and not signals.shocked:
            p -= 0.3

        age = arc.age(cycle)
        if age > 10:
            p -= 0.2 * ((age - 10) // 5)

        return round(p, 2)


class ArcLifecycle:
    """Creates, advances and resolves arcs in a cycle context."""

    def __init__(
        self,
        config: Optional[KernelConfig] = None,
        hooks: Optional[HookLifecycle] = None,
    ):
        self.config = config or KernelConfig()
        self.hooks = hooks

    @property
    def thresholds(self) -> PhaseThresholds:
        return self.config.arcs.thresholds

    def create(
        self,
        ctx: ExecutionContext,
        arc_id: str,
        arc_type: str = "crisis",
        neighborhood: str = "",
        domain_tag: str = "GENERAL",
        summary: str = "",
        involved_entities: Optional[List[str]] = None,
        tension: Optional[float] = None,
        calendar_trigger: Optional[str] = None,
    ) -> Arc:
        """Start a new arc in phase early. The id must be neither live nor retired."""
        existing = ctx.arcs.get(arc_id)
        if existing is not None and existing.is_live:
            raise ArcLifecycleError(f"Arc {arc_id} is already live ({existing.phase.value})")
        if arc_id in ctx.retired_arc_ids or existing is not None:
            raise ArcLifecycleError(f"Arc {arc_id} was resolved; mint a new id")

        cap = self.config.arcs.max_active_arcs
        if cap is not None and len(ctx.live_arcs()) >= cap:
            raise ArcLifecycleError(f"Active arc limit reached ({cap})")

        arc = Arc(
            id=arc_id,
            type=arc_type,
            phase=ArcPhase.EARLY,
            tension=self.config.arcs.initial_tension if tension is None else tension,
            neighborhood=neighborhood,
            domain_tag=domain_tag,
            summary=summary,
            involved_entities=involved_entities or [],
            cycle_created=ctx.cycle,
            calendar_trigger=calendar_trigger or ctx.calendar.trigger or None,
        )
        ctx.arcs[arc_id] = arc
        ctx.advanced_arc_ids.add(arc_id)
        self._record(ctx, arc, f"Create {arc_type} arc {arc_id}")
        logger.info("Cycle %d: created arc %s (%s)", ctx.cycle, arc_id, arc_type)
        return arc

    def advance(self, ctx: ExecutionContext, arc: Arc, pressure: float) -> Arc:
        """Move tension by a bounded delta, then take at most one phase step."""
        current = ctx.arcs.get(arc.id, arc)
        if not current.is_live:
            raise ArcLifecycleError(f"Arc {arc.id} is resolved and cannot advance")
        if current.id in ctx.advanced_arc_ids:
            raise ArcLifecycleError(f"Arc {arc.id} already changed in cycle {ctx.cycle}")

        limit = self.config.arcs.max_tension_delta
        delta = max(-limit, min(limit, pressure))
        current.tension = round(min(10.0, max(0.0, current.tension + delta)), 2)

        before = current.phase
        current.phase = next_phase(before, current.tension, self.thresholds)
        if current.phase == ArcPhase.RESOLVED:
            current.cycle_resolved = ctx.cycle
            ctx.retired_arc_ids.add(current.id)

        ctx.arcs[current.id] = current
        ctx.advanced_arc_ids.add(current.id)
        self._record(ctx, current, f"Advance arc {current.id} ({delta:+.2f})")

        if current.phase != before:
            self._on_transition(ctx, current, before)
        return current

    def resolve(self, ctx: ExecutionContext, arc: Arc, trigger: str = "manual") -> Arc:
        """End an arc for good."""
        current = ctx.arcs.get(arc.id, arc)
        if not current.is_live:
            raise ArcLifecycleError(f"Arc {arc.id} is already resolved")

        before = current.phase
        current.phase = ArcPhase.RESOLVED
        current.cycle_resolved = ctx.cycle
        ctx.arcs[current.id] = current
        ctx.retired_arc_ids.add(current.id)
        ctx.advanced_arc_ids.add(current.id)
        self._record(ctx, current, f"Resolve arc {current.id} ({trigger})")
        self._on_transition(ctx, current, before)
        return current

    def _record(self, ctx: ExecutionContext, arc: Arc, reason: str) -> None:
        queue_ledger_rows(
            ctx,
            self.config.collections.arc_ledger,
            ARC_LEDGER_HEADERS,
            [arc_record(arc, ctx.cycle, ctx.calendar, datetime.utcnow().isoformat())],
            reason=reason,
            domain="events",
        )

    def _on_transition(self, ctx: ExecutionContext, arc: Arc, before: ArcPhase) -> None:
        ctx.arc_transitions.append(
            ArcTransition(
                arc_id=arc.id,
                from_phase=before,
                to_phase=arc.phase,
                tension=arc.tension,
                cycle=ctx.cycle,
            )
        )
        logger.info(
            "Cycle %d: arc %s %s -> %s (tension %.2f)",
            ctx.cycle,
            arc.id,
            before.value,
            arc.phase.value,
            arc.tension,
        )
        if self.hooks is None:
            return

        where = f" in {arc.neighborhood}" if arc.neighborhood else ""
        if arc.phase == ArcPhase.RESOLVED:
            self.hooks.create(
                ctx,
                text=f"The {arc.type} arc{where} has resolved. Follow-up on its aftermath.",
                hook_type="arc-resolved",
                domain=arc.domain_tag,
                neighborhood=arc.neighborhood,
                severity=RESOLVED_HOOK_SEVERITY,
                linked_arc_id=arc.id,
            )
        else:
            self.hooks.create(
                ctx,
                text=f"The {arc.type} arc{where} moved to {arc.phase.value}.",
                hook_type="arc-phase",
                domain=arc.domain_tag,
                neighborhood=arc.neighborhood,
                severity=PHASE_HOOK_SEVERITY.get(arc.phase, DEFAULT_PHASE_HOOK_SEVERITY),
                linked_arc_id=arc.id,
            )

    def neighborhood_loads(self, ctx: ExecutionContext) -> Dict[str, int]:
        loads: Dict[str, int] = {}
        for arc in ctx.live_arcs():
            key = arc.neighborhood or "Downtown"
            loads[key] = loads.get(key, 0) + 1
        return loads
