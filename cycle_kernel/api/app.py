"""
Cycle Kernel API — FastAPI endpoints.

Exposes the kernel over REST for:
- Running, dry-running and replaying cycles
- Arc inspection and ledger history
- Story hook inspection and pickup
- Domain cooldowns
- Configuration
"""

from typing import Optional

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel

from cycle_kernel.cooldowns.ledger import active_summary, calendar_domain_effects
from cycle_kernel.engine.cycle import CycleRunner
from cycle_kernel.execution.executor import PersistenceAbortError
from cycle_kernel.intents.queue import clear_all_intents
from cycle_kernel.ledger.replay import arc_history, load_cooldowns, load_hooks, replay_arcs
from cycle_kernel.lifecycle.arcs import ArcLifecycleError
from cycle_kernel.models.calendar import CalendarContext
from cycle_kernel.models.config import KernelConfig
from cycle_kernel.models.context import CycleMode
from cycle_kernel.table_store.store import InMemoryTableStore, TableStore


# --- Request Models ---

class CycleRunRequest(BaseModel):
    cycle: Optional[int] = None
    calendar: CalendarContext = CalendarContext()
    strict: bool = False
    profile: bool = False


class ReplayRequest(BaseModel):
    calendar: CalendarContext = CalendarContext()
    profile: bool = False


class PickupRequest(BaseModel):
    cycle: Optional[int] = None


# --- Application Factory ---

def create_app(
    store: Optional[TableStore] = None,
    config: Optional[KernelConfig] = None,
    runner: Optional[CycleRunner] = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""

    app = FastAPI(
        title="Cycle Kernel API",
        description="Cycle persistence and lifecycle engine",
        version="0.1.0",
    )

    if runner is None:
        runner = CycleRunner(store or InMemoryTableStore(), config or KernelConfig())

    app.state.runner = runner
    app.state.store = runner.store

    def _rows(collection: str) -> list:
        return runner.ledger.read_rows(collection)

    def _run(req_cycle: Optional[int], mode: CycleMode, calendar: CalendarContext) -> dict:
        try:
            report = runner.run_cycle(cycle=req_cycle, mode=mode, calendar=calendar)
        except PersistenceAbortError as e:
            raise HTTPException(409, {
                "message": str(e),
                "result": e.result.model_dump(mode="json"),
            })
        except ArcLifecycleError as e:
            raise HTTPException(409, str(e))
        return report.model_dump(mode="json")

    # === CYCLES ===

    @app.get("/health")
    def health():
        return {"status": "ok", "runner": runner.status}

    @app.get("/cycle/status")
    def cycle_status():
        last = runner.history[-1] if runner.history else None
        return {
            "status": runner.status,
            "next_cycle": runner.next_cycle_number(),
            "last_cycle": last.cycle if last else None,
            "cycles_run": len(runner.history),
            "generators": [g.name for g in runner.generators],
        }

    @app.post("/cycle/run")
    def run_cycle(req: CycleRunRequest):
        """Run one cycle and persist it."""
        mode = CycleMode(strict=req.strict, profile=req.profile)
        return _run(req.cycle, mode, req.calendar)

    @app.post("/cycle/dry-run")
    def dry_run_cycle(req: CycleRunRequest):
        """Run one cycle without writing anything."""
        mode = CycleMode(dry_run=True, strict=req.strict, profile=req.profile)
        return _run(req.cycle, mode, req.calendar)

    @app.post("/cycle/replay/{cycle}")
    def replay_cycle(cycle: int, req: ReplayRequest):
        """Regenerate a past cycle and compare it with the recorded run."""
        mode = CycleMode(replay=True, replay_cycle=cycle, profile=req.profile)
        return _run(cycle, mode, req.calendar)

    @app.get("/cycle/history")
    def cycle_history(limit: int = 20):
        return [r.model_dump(mode="json") for r in runner.history[-limit:]]

    # === ARCS ===

    @app.get("/arcs")
    def list_arcs():
        """Arcs live as of the latest ledger row."""
        arcs = replay_arcs(_rows(runner.config.collections.arc_ledger))
        return [a.model_dump(mode="json") for a in arcs.values()]

    @app.get("/arcs/{arc_id}")
    def get_arc(arc_id: str):
        rows = _rows(runner.config.collections.arc_ledger)
        history = arc_history(rows, arc_id)
        if not history:
            raise HTTPException(404, "Arc not found")
        live = replay_arcs(rows).get(arc_id)
        return {
            "id": arc_id,
            "live": live is not None,
            "arc": live.model_dump(mode="json") if live else None,
            "history": history,
        }

    # === HOOKS ===

    @app.get("/hooks")
    def list_hooks(include_expired: bool = False):
        hooks = load_hooks(
            _rows(runner.config.collections.hook_deck), runner.next_cycle_number()
        )
        return [
            h.model_dump(mode="json")
            for h in hooks.values()
            if include_expired or not h.is_expired
        ]

    @app.post("/hooks/{hook_id}/pickup")
    def pickup_hook(hook_id: str, req: PickupRequest):
        """Record that a consumer used a hook. Only the first pickup counts."""
        ctx = runner.begin_cycle(cycle=runner.next_cycle_number())
        if hook_id not in ctx.hooks:
            raise HTTPException(404, "Hook not found")
        changed = runner.hooks.mark_picked_up(ctx, hook_id, req.cycle)
        result = runner.executor.flush(ctx)
        clear_all_intents(ctx)
        return {
            "changed": changed,
            "hook": ctx.hooks[hook_id].model_dump(mode="json"),
            "writes": result.write_calls,
        }

    # === COOLDOWNS ===

    @app.get("/cooldowns")
    def get_cooldowns():
        cooldowns = load_cooldowns(_rows(runner.config.collections.cooldowns))
        return {
            "cooldowns": cooldowns,
            "active": active_summary(cooldowns),
            "suppressed": sorted(d for d, n in cooldowns.items() if n > 0),
        }

    @app.post("/cooldowns/effects")
    def get_calendar_effects(calendar: CalendarContext):
        """Domains the given calendar day boosts or quiets."""
        return calendar_domain_effects(calendar).model_dump()

    # === CONFIG ===

    @app.get("/config")
    def get_config():
        return runner.config.model_dump()

    @app.put("/config")
    def update_config(config: KernelConfig):
        runner.reconfigure(config)
        return config.model_dump()

    return app
