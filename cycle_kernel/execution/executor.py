"""
Intent Executor — applies a cycle's queued intents to the table store.

Behavioral Contract:
- Order: replace_ops, then updates, then logs. Within each queue intents
  run by (priority, sequence); then they are grouped per collection, groups
  in first-appearance order.
- Runs of cell intents in one collection are coalesced: the last write to
  a cell wins and contiguous columns on a row become one range write.
  Final values match applying the intents one at a time.
- All appends for a collection in one queue become one batch write at
  "last row + 1", last row observed once before any write (or the replaced
  row count when the same flush replaces the collection).
- Dry-run and replay plan everything and write nothing. Their append bases
  come from the start-of-cycle scan, and store trouble never fails them.
- A store error stops the remaining writes for that collection only.
  In strict mode the first error aborts the flush.
- Never clears the queues. The caller does, after inspecting them.
"""

import logging
import time
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple

from pydantic import BaseModel

from cycle_kernel.models.context import ExecutionContext
from cycle_kernel.models.execution import CollectionError, ExecutionResult
from cycle_kernel.models.intent import IntentKind, WriteIntent
from cycle_kernel.table_store.store import TableStore

logger = logging.getLogger(__name__)


class PersistenceAbortError(Exception):
    """Strict-mode flush stopped at the first store failure."""

    def __init__(self, result: ExecutionResult, error: CollectionError):
        self.result = result
        self.error = error
        super().__init__(
            f"Flush aborted on '{error.collection}' ({error.kind}): {error.message}"
        )


class PlannedWrite(BaseModel):
    """One store call the executor will issue."""

    phase: str                      # "replace" | "update" | "log"
    collection: str
    op: str                         # "replace" | "cell" | "range" | "append"
    row: int = 1
    col: int = 1
    values: List[List[Any]]
    intent_count: int = 0           # Intents completed once this write lands

    @property
    def cell_count(self) -> int:
        return sum(len(r) for r in self.values)


def _ordered(intents: Sequence[WriteIntent]) -> List[WriteIntent]:
    return sorted(intents, key=lambda i: (i.priority, i.sequence))


def _group(intents: Sequence[WriteIntent]) -> List[Tuple[str, List[WriteIntent]]]:
    groups: Dict[str, List[WriteIntent]] = {}
    for intent in _ordered(intents):
        groups.setdefault(intent.collection, []).append(intent)
    return list(groups.items())


def _coalesce_cells(
    phase: str, collection: str, cells: Dict[Tuple[int, int], Any], intent_count: int
) -> List[PlannedWrite]:
    """Turn a run of cell writes into one write per contiguous column run."""
    writes: List[PlannedWrite] = []
    by_row: Dict[int, List[int]] = {}
    for row, col in cells:
        by_row.setdefault(row, []).append(col)

    for row in sorted(by_row):
        cols = sorted(by_row[row])
        start = prev = cols[0]
        for col in cols[1:] + [None]:
            if col is not None and col == prev + 1:
                prev = col
                continue
            values = [[cells[(row, c)] for c in range(start, prev + 1)]]
            writes.append(
                PlannedWrite(
                    phase=phase,
                    collection=collection,
                    op="cell" if start == prev else "range",
                    row=row,
                    col=start,
                    values=values,
                )
            )
            if col is not None:
                start = prev = col

    # The run's intents count as applied once its last write lands
    writes[-1].intent_count = intent_count
    return writes


def plan_group(
    phase: str,
    collection: str,
    intents: Sequence[WriteIntent],
    append_row: Optional[int] = None,
) -> List[PlannedWrite]:
    """
    Writes for one collection in one queue. `intents` are already ordered.
    Cell and range writes keep their order; the append batch goes last.
    """
    writes: List[PlannedWrite] = []
    cells: Dict[Tuple[int, int], Any] = {}
    cell_intents = 0
    appended: List[List[Any]] = []
    append_intents = 0

    def close_cell_run() -> None:
        nonlocal cells, cell_intents
        if cells:
            writes.extend(_coalesce_cells(phase, collection, cells, cell_intents))
        cells = {}
        cell_intents = 0

    for intent in intents:
        if intent.kind == IntentKind.CELL:
            cells[(intent.address.row, intent.address.col)] = intent.values[0][0]
            cell_intents += 1
        elif intent.kind == IntentKind.RANGE:
            close_cell_run()
            writes.append(
                PlannedWrite(
                    phase=phase,
                    collection=collection,
                    op="range",
                    row=intent.address.row,
                    col=intent.address.col,
                    values=[list(r) for r in intent.values],
                    intent_count=1,
                )
            )
        elif intent.kind == IntentKind.REPLACE:
            close_cell_run()
            writes.append(
                PlannedWrite(
                    phase=phase,
                    collection=collection,
                    op="replace",
                    values=[list(r) for r in intent.values],
                    intent_count=1,
                )
            )
        else:
            appended.extend(list(r) for r in intent.values)
            append_intents += 1
    close_cell_run()

    if appended:
        writes.append(
            PlannedWrite(
                phase=phase,
                collection=collection,
                op="append",
                row=append_row if append_row is not None else 1,
                values=appended,
                intent_count=append_intents,
            )
        )
    return writes


class IntentExecutor:
    """Flushes an ExecutionContext's queues to a TableStore."""

    def __init__(self, store: TableStore):
        self.store = store

    def _observe_append_bases(
        self, ctx: ExecutionContext, result: ExecutionResult, failed: Dict[str, str]
    ) -> Dict[str, int]:
        """Next free row per appended collection, read once before any write."""
        replaced_rows: Dict[str, int] = {}
        for intent in _ordered(ctx.replace_ops):
            replaced_rows[intent.collection] = intent.row_count

        bases: Dict[str, int] = {}
        for queue, phase in ((ctx.updates, "update"), (ctx.logs, "log")):
            for intent in queue:
                c = intent.collection
                if intent.kind != IntentKind.APPEND or c in bases or c in failed:
                    continue
                if c in replaced_rows:
                    bases[c] = replaced_rows[c] + 1
                    continue
                if not ctx.mode.writes_enabled:
                    bases[c] = self._planned_base(ctx, c)
                    continue
                try:
                    bases[c] = self.store.last_row(c) + 1
                except Exception as e:
                    self._record_error(ctx, result, failed, c, phase, e)
        return bases

    def _planned_base(self, ctx: ExecutionContext, collection: str) -> int:
        """Append base for a flush that writes nothing. Store trouble never fails it."""
        if collection in ctx.last_rows:
            return ctx.last_rows[collection] + 1
        try:
            return self.store.last_row(collection) + 1
        except Exception as e:
            logger.warning("Could not read last row of '%s' for planning: %s", collection, e)
            return 1

    def plan(
        self,
        ctx: ExecutionContext,
        bases: Optional[Dict[str, int]] = None,
    ) -> List[PlannedWrite]:
        """Every write the flush would issue, in execution order."""
        next_row = dict(bases or {})
        planned: List[PlannedWrite] = []
        for queue, phase in (
            (ctx.replace_ops, "replace"),
            (ctx.updates, "update"),
            (ctx.logs, "log"),
        ):
            for collection, intents in _group(queue):
                writes = plan_group(phase, collection, intents, next_row.get(collection))
                for w in writes:
                    if w.op == "append":
                        next_row[collection] = w.row + len(w.values)
                planned.extend(writes)
        return planned

    def flush(self, ctx: ExecutionContext) -> ExecutionResult:
        """
        Apply all queued intents. Returns what was (or, in dry-run and
        replay, would have been) written.
        """
        start = time.monotonic()
        result = ExecutionResult(
            started_at=datetime.utcnow(),
            dry_run=ctx.mode.dry_run,
            replay=ctx.mode.replay,
        )
        total = len(ctx.all_intents())
        if total == 0:
            return self._finish(result, start)

        failed: Dict[str, str] = {}
        bases = self._observe_append_bases(ctx, result, failed)
        planned = self.plan(ctx, bases)
        write = ctx.mode.writes_enabled

        for w in planned:
            if w.collection in failed:
                continue
            if write:
                try:
                    self._apply(w)
                except Exception as e:
                    self._record_error(ctx, result, failed, w.collection, w.phase, e)
                    continue
                result.write_calls += 1
                result.intents_applied += w.intent_count
                result.by_collection[w.collection] = (
                    result.by_collection.get(w.collection, 0) + w.intent_count
                )
            self._count(result, w)

        if not write:
            result.intents_skipped = total
            for intent in ctx.all_intents():
                logger.debug(
                    "[%s] skipped %s -> %s (%s): %s",
                    "replay" if ctx.mode.replay else "dry-run",
                    intent.kind.value,
                    intent.collection,
                    intent.domain,
                    intent.reason,
                )

        self._finish(result, start)
        logger.info(
            "Cycle %d flush: %d intents, %d writes, %d cells, %d rows appended, "
            "%d rows replaced, %d errors%s",
            ctx.cycle,
            total,
            result.write_calls,
            result.cells_written,
            result.rows_appended,
            result.rows_replaced,
            len(result.errors),
            "" if write else " (no writes)",
        )
        return result

    def _apply(self, w: PlannedWrite) -> None:
        if w.op == "replace":
            self.store.replace(w.collection, w.values)
        elif w.op == "cell":
            self.store.write_cell(w.collection, w.row, w.col, w.values[0][0])
        else:
            # Range writes and append batches both land at a fixed row
            self.store.write_range(w.collection, w.row, w.col, w.values)

    def _count(self, result: ExecutionResult, w: PlannedWrite) -> None:
        if w.op == "replace":
            result.rows_replaced += len(w.values)
        elif w.op == "append":
            result.rows_appended += len(w.values)
        else:
            result.cells_written += w.cell_count
            if w.op == "range":
                result.ranges_written += 1

    def _record_error(
        self,
        ctx: ExecutionContext,
        result: ExecutionResult,
        failed: Dict[str, str],
        collection: str,
        phase: str,
        exc: Exception,
    ) -> None:
        error = CollectionError(collection=collection, kind=phase, message=str(exc))
        result.errors.append(error)
        failed[collection] = str(exc)
        logger.warning("Write to '%s' failed during %s phase: %s", collection, phase, exc)
        if ctx.mode.strict:
            result.aborted = True
            raise PersistenceAbortError(self._finish(result, None), error)

    def _finish(self, result: ExecutionResult, start: Optional[float]) -> ExecutionResult:
        result.finished_at = datetime.utcnow()
        if start is not None:
            result.duration_seconds = time.monotonic() - start
        return result
