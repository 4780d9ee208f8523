"""
Ledger Replay — reconstructs live entity state at the start of each cycle.

Behavioral Contract:
- Ledger rows are scanned in stored order. The last row per ArcId wins,
  because the ledger is append-only and later rows are later writes.
- Only arcs whose latest phase is not resolved are returned as live.
- Rows from the current cycle or later are not history yet and are
  ignored, which is what lets a past cycle be replayed.
- Malformed rows (no id, unknown phase) are skipped and logged. They
  never stop the rest of the scan.
- A missing or header-only ledger yields an empty map. That is the
  normal state for cycle 1.
"""

import logging
from typing import Any, Dict, List, Optional, Sequence, Set

from cycle_kernel.ledger.schema import (
    HeaderIndex,
    parse_bool,
    parse_float,
    parse_int,
    parse_list,
)
from cycle_kernel.models.arc import Arc, ArcPhase
from cycle_kernel.models.config import KernelConfig
from cycle_kernel.models.context import ExecutionContext
from cycle_kernel.models.hook import DEFAULT_EXPIRES_AFTER, Hook
from cycle_kernel.table_store.store import TableStore

logger = logging.getLogger(__name__)

# Phase names written by older ledger writers
PHASE_ALIASES = {
    "falling": ArcPhase.DECLINE,
    "climax": ArcPhase.PEAK,
}


def parse_phase(value: Any) -> Optional[ArcPhase]:
    """Ledger phase cell -> ArcPhase, or None when empty or unknown."""
    if value is None:
        return None
    text = str(value).strip().lower()
    if not text:
        return None
    if text in PHASE_ALIASES:
        return PHASE_ALIASES[text]
    try:
        return ArcPhase(text)
    except ValueError:
        return None


def _text_or_none(value: Any) -> Optional[str]:
    return None if value is None else str(value)


def _is_history(index: HeaderIndex, row: Sequence[Any], current_cycle: Optional[int]) -> bool:
    if current_cycle is None:
        return True
    cycle = parse_int(index.get(row, "Cycle"))
    # Rows without a cycle stamp are treated as history
    return cycle is None or cycle < current_cycle


def _arc_from_row(index: HeaderIndex, row: Sequence[Any], phase: ArcPhase) -> Arc:
    row_cycle = parse_int(index.get(row, "Cycle")) or 1
    cycle_created = parse_int(index.get(row, "CycleCreated"))
    tension = parse_float(index.get(row, "Tension")) or 0.0
    return Arc(
        id=str(index.get(row, "ArcId")).strip(),
        type=str(index.get(row, "Type", "crisis")),
        phase=phase,
        tension=round(min(10.0, max(0.0, tension)), 2),
        neighborhood=str(index.get(row, "Neighborhood", "")),
        domain_tag=str(index.get(row, "DomainTag", "GENERAL")),
        summary=str(index.get(row, "Summary", "")),
        involved_entities=parse_list(index.get(row, "InvolvedEntities")),
        cycle_created=cycle_created if cycle_created is not None else row_cycle,
        cycle_resolved=parse_int(index.get(row, "CycleResolved")),
        calendar_trigger=_text_or_none(index.get(row, "CalendarTrigger")),
    )


def _latest_arcs(
    ledger_rows: Sequence[Sequence[Any]], current_cycle: Optional[int]
) -> Dict[str, Arc]:
    """Last well-formed row per ArcId, resolved ones included."""
    latest: Dict[str, Arc] = {}
    if len(ledger_rows) < 2:
        return latest

    index = HeaderIndex(ledger_rows[0])
    if "ArcId" not in index or "Phase" not in index:
        logger.warning("Arc ledger header lacks ArcId/Phase columns; nothing to replay")
        return latest

    for offset, row in enumerate(ledger_rows[1:], start=2):
        if not _is_history(index, row, current_cycle):
            continue
        arc_id = index.get(row, "ArcId")
        if arc_id is None or not str(arc_id).strip():
            logger.debug("Skipping arc ledger row %d: missing ArcId", offset)
            continue
        phase = parse_phase(index.get(row, "Phase"))
        if phase is None:
            logger.debug("Skipping arc ledger row %d: unreadable phase", offset)
            continue
        latest[str(arc_id).strip()] = _arc_from_row(index, row, phase)
    return latest


def replay_arcs(
    ledger_rows: Sequence[Sequence[Any]], current_cycle: Optional[int] = None
) -> Dict[str, Arc]:
    """
    Live arcs as of the start of `current_cycle`.

    `ledger_rows` is the whole collection, header row first.
    """
    return {
        arc_id: arc
        for arc_id, arc in _latest_arcs(ledger_rows, current_cycle).items()
        if arc.is_live
    }


def retired_arc_ids(
    ledger_rows: Sequence[Sequence[Any]], current_cycle: Optional[int] = None
) -> Set[str]:
    """Ids that have ever resolved. These are never reused."""
    retired: Set[str] = set()
    if len(ledger_rows) < 2:
        return retired
    index = HeaderIndex(ledger_rows[0])
    for row in ledger_rows[1:]:
        if not _is_history(index, row, current_cycle):
            continue
        arc_id = index.get(row, "ArcId")
        if arc_id and parse_phase(index.get(row, "Phase")) == ArcPhase.RESOLVED:
            retired.add(str(arc_id).strip())
    return retired


def arc_history(ledger_rows: Sequence[Sequence[Any]], arc_id: str) -> List[Dict[str, Any]]:
    """Every ledger row for one arc, oldest first."""
    if len(ledger_rows) < 2:
        return []
    index = HeaderIndex(ledger_rows[0])
    return [
        index.as_dict(row)
        for row in ledger_rows[1:]
        if str(index.get(row, "ArcId", "")).strip() == arc_id
    ]


def hook_age(created_cycle: int, current_cycle: int) -> int:
    """Cycles since creation. A future created_cycle clamps to 0."""
    return max(0, current_cycle - created_cycle)


def load_hooks(
    deck_rows: Sequence[Sequence[Any]], current_cycle: int
) -> Dict[str, Hook]:
    """
    Fresh read of the hook deck. Each hook keeps its storage row so
    lifecycle updates can be queued as cell writes.
    """
    hooks: Dict[str, Hook] = {}
    if len(deck_rows) < 2:
        return hooks

    index = HeaderIndex(deck_rows[0])
    for storage_row, row in enumerate(deck_rows[1:], start=2):
        hook_id = index.get(row, "HookId")
        if hook_id is None or not str(hook_id).strip():
            logger.debug("Skipping hook deck row %d: missing HookId", storage_row)
            continue
        created = parse_int(index.get(row, "CreatedCycle"))
        if created is None:
            created = parse_int(index.get(row, "Cycle"))
        if created is None:
            logger.debug("Skipping hook deck row %d: no creation cycle", storage_row)
            continue
        if created >= current_cycle:
            continue

        severity = parse_int(index.get(row, "Severity"))
        expires_after = parse_int(index.get(row, "ExpiresAfter"))
        hook_id = str(hook_id).strip()
        if hook_id in hooks:
            logger.debug("Hook %s appears twice in the deck; row %d wins", hook_id, storage_row)

        hooks[hook_id] = Hook(
            id=hook_id,
            type=str(index.get(row, "HookType", "signal")),
            domain=str(index.get(row, "Domain", "")),
            neighborhood=str(index.get(row, "Neighborhood", "")),
            priority=parse_int(index.get(row, "Priority")) or 1,
            severity=min(10, max(1, severity if severity is not None else 5)),
            text=str(index.get(row, "HookText", "")),
            linked_arc_id=_text_or_none(index.get(row, "LinkedArcId")),
            created_cycle=created,
            age=hook_age(created, current_cycle),
            expires_after=max(1, expires_after or DEFAULT_EXPIRES_AFTER),
            is_expired=parse_bool(index.get(row, "IsExpired", False)),
            pickup_cycle=parse_int(index.get(row, "PickupCycle")),
            archived=parse_bool(index.get(row, "Archived", False)),
            row=storage_row,
        )
    return hooks


def archived_hook_ids(
    archive_rows: Sequence[Sequence[Any]], current_cycle: Optional[int] = None
) -> Set[str]:
    """Hook ids already copied to the archive before `current_cycle`."""
    archived: Set[str] = set()
    if len(archive_rows) < 2:
        return archived
    index = HeaderIndex(archive_rows[0])
    for row in archive_rows[1:]:
        if not _is_history(index, row, current_cycle):
            continue
        hook_id = index.get(row, "HookId")
        if hook_id and str(hook_id).strip():
            archived.add(str(hook_id).strip())
    return archived


def load_cooldowns(rows: Sequence[Sequence[Any]]) -> Dict[str, int]:
    """Domain cooldown table -> {DOMAIN: cycles remaining}, never negative."""
    cooldowns: Dict[str, int] = {}
    if len(rows) < 2:
        return cooldowns
    index = HeaderIndex(rows[0])
    for row in rows[1:]:
        domain = index.get(row, "Domain")
        remaining = parse_int(index.get(row, "CyclesRemaining"))
        if not domain or remaining is None:
            continue
        cooldowns[str(domain).strip().upper()] = max(0, remaining)
    return cooldowns


def find_cycle_seed(rows: Sequence[Sequence[Any]], cycle: int) -> Optional[Dict[str, Any]]:
    """The most recent Cycle_Seeds record for `cycle`, if any."""
    if len(rows) < 2:
        return None
    index = HeaderIndex(rows[0])
    found = None
    for row in rows[1:]:
        if parse_int(index.get(row, "CycleId")) == cycle:
            found = index.as_dict(row)
    return found


class LedgerReplay:
    """Start-of-cycle scan: the only place besides the executor that reads the store."""

    def __init__(self, store: TableStore, config: Optional[KernelConfig] = None):
        self.store = store
        self.config = config or KernelConfig()

    def read_rows(self, collection: str) -> List[List[Any]]:
        """Whole collection, header first. Missing collection -> []."""
        if not self.store.exists(collection):
            return []
        header, rows = self.store.read_all(collection)
        if not header:
            return []
        return [list(header)] + [list(r) for r in rows]

    def restore(self, ctx: ExecutionContext) -> ExecutionContext:
        """Populate the context's working state from the store."""
        names = self.config.collections
        scanned: Dict[str, List[List[Any]]] = {}

        for collection in (
            names.arc_ledger,
            names.hook_deck,
            names.hook_archive,
            names.cooldowns,
            names.cycle_seeds,
        ):
            if not self.store.exists(collection):
                continue
            rows = self.read_rows(collection)
            scanned[collection] = rows
            ctx.existing_collections.add(collection)
            ctx.collection_headers[collection] = [str(h) for h in rows[0]] if rows else []
            ctx.last_rows[collection] = self.store.last_row(collection)

        arc_rows = scanned.get(names.arc_ledger, [])
        ctx.arcs = replay_arcs(arc_rows, ctx.cycle)
        ctx.retired_arc_ids = retired_arc_ids(arc_rows, ctx.cycle)
        ctx.hooks = load_hooks(scanned.get(names.hook_deck, []), ctx.cycle)
        # Decks without an Archived column rely on the archive itself
        ctx.archived_hook_ids = archived_hook_ids(scanned.get(names.hook_archive, []), ctx.cycle)
        for hook_id in ctx.archived_hook_ids:
            if hook_id in ctx.hooks:
                ctx.hooks[hook_id].archived = True
        ctx.cooldowns = load_cooldowns(scanned.get(names.cooldowns, []))

        logger.info(
            "Cycle %d restored: %d live arcs, %d retired ids, %d hooks, %d cooldowns",
            ctx.cycle,
            len(ctx.arcs),
            len(ctx.retired_arc_ids),
            len(ctx.hooks),
            len(ctx.cooldowns),
        )
        return ctx
