"""
Intent Queue — defers every table-store mutation until end of cycle.

Behavioral Contract:
- No I/O. Each call validates, builds one frozen WriteIntent and puts it
  on one of the context's three queues.
- Replace intents go to `replace_ops`; cell, range and append intents go
  to `updates`; log appends go to `logs`.
- Malformed input (blank collection, ragged values, missing address,
  empty append) raises IntentValidationError immediately. Values are
  never padded or coerced.
"""

import logging
from collections import Counter
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence
from uuid import uuid4

from pydantic import ValidationError

from cycle_kernel.models.context import ExecutionContext
from cycle_kernel.models.intent import (
    LOG_PRIORITY,
    REPLACE_PRIORITY,
    UPDATE_PRIORITY,
    CellAddress,
    IntentKind,
    WriteIntent,
)

logger = logging.getLogger(__name__)

SCALAR_TYPES = (str, int, float, bool, type(None))


class IntentValidationError(ValueError):
    """A write intent was rejected at enqueue time."""


def _check_scalars(values: Sequence[Sequence[Any]]) -> None:
    for i, row in enumerate(values):
        if isinstance(row, (str, bytes)) or not isinstance(row, (list, tuple)):
            raise IntentValidationError(f"row {i} is not a sequence of cells")
        for j, value in enumerate(row):
            if not isinstance(value, SCALAR_TYPES):
                raise IntentValidationError(
                    f"cell ({i}, {j}) holds {type(value).__name__}, expected a scalar"
                )


def _build(
    ctx: ExecutionContext,
    collection: str,
    kind: IntentKind,
    values: Sequence[Sequence[Any]],
    reason: str,
    domain: str,
    priority: int,
    address: Optional[CellAddress] = None,
) -> WriteIntent:
    if not isinstance(values, (list, tuple)):
        raise IntentValidationError(f"{kind.value} intent values must be a 2D list")
    _check_scalars(values)
    try:
        return WriteIntent(
            id=f"wi_{uuid4().hex[:12]}",
            collection=collection,
            kind=kind,
            address=address,
            values=values,
            reason=reason,
            domain=domain,
            priority=priority,
            created_at=datetime.utcnow(),
            sequence=ctx.next_sequence(),
        )
    except ValidationError as e:
        raise IntentValidationError(
            f"Invalid {kind.value} intent for '{collection}': {e}"
        ) from e


def _address(row: int, col: int) -> CellAddress:
    try:
        return CellAddress(row=row, col=col)
    except ValidationError as e:
        raise IntentValidationError(f"Invalid address ({row}, {col}): {e}") from e


def queue_cell(
    ctx: ExecutionContext,
    collection: str,
    row: int,
    col: int,
    value: Any,
    reason: str = "",
    domain: str = "unknown",
    priority: int = UPDATE_PRIORITY,
) -> WriteIntent:
    intent = _build(
        ctx, collection, IntentKind.CELL, [[value]], reason, domain, priority,
        address=_address(row, col),
    )
    ctx.updates.append(intent)
    return intent


def queue_range(
    ctx: ExecutionContext,
    collection: str,
    start_row: int,
    start_col: int,
    values: Sequence[Sequence[Any]],
    reason: str = "",
    domain: str = "unknown",
    priority: int = UPDATE_PRIORITY,
) -> WriteIntent:
    intent = _build(
        ctx, collection, IntentKind.RANGE, values, reason, domain, priority,
        address=_address(start_row, start_col),
    )
    ctx.updates.append(intent)
    return intent


def queue_append(
    ctx: ExecutionContext,
    collection: str,
    row: Sequence[Any],
    reason: str = "",
    domain: str = "unknown",
    priority: int = UPDATE_PRIORITY,
) -> WriteIntent:
    intent = _build(ctx, collection, IntentKind.APPEND, [row], reason, domain, priority)
    ctx.updates.append(intent)
    return intent


def queue_batch_append(
    ctx: ExecutionContext,
    collection: str,
    rows: Sequence[Sequence[Any]],
    reason: str = "",
    domain: str = "unknown",
    priority: int = UPDATE_PRIORITY,
) -> WriteIntent:
    intent = _build(ctx, collection, IntentKind.APPEND, rows, reason, domain, priority)
    ctx.updates.append(intent)
    return intent


def queue_replace(
    ctx: ExecutionContext,
    collection: str,
    all_rows: Sequence[Sequence[Any]],
    reason: str = "",
    domain: str = "unknown",
    priority: int = REPLACE_PRIORITY,
) -> WriteIntent:
    intent = _build(ctx, collection, IntentKind.REPLACE, all_rows, reason, domain, priority)
    ctx.replace_ops.append(intent)
    return intent


def queue_log(
    ctx: ExecutionContext,
    collection: str,
    row: Sequence[Any],
    reason: str = "",
    priority: int = LOG_PRIORITY,
) -> WriteIntent:
    """Audit-trail append. Runs after all updates."""
    intent = _build(ctx, collection, IntentKind.APPEND, [row], reason, "audit", priority)
    ctx.logs.append(intent)
    return intent


def queue_batch_log(
    ctx: ExecutionContext,
    collection: str,
    rows: Sequence[Sequence[Any]],
    reason: str = "",
    priority: int = LOG_PRIORITY,
) -> WriteIntent:
    intent = _build(ctx, collection, IntentKind.APPEND, rows, reason, "audit", priority)
    ctx.logs.append(intent)
    return intent


# --- Introspection ---

def total_intent_count(ctx: ExecutionContext) -> int:
    return len(ctx.updates) + len(ctx.logs) + len(ctx.replace_ops)


def intents_for_collection(ctx: ExecutionContext, collection: str) -> List[WriteIntent]:
    return [i for i in ctx.all_intents() if i.collection == collection]


def intent_counts_by_domain(ctx: ExecutionContext) -> Dict[str, int]:
    return dict(Counter(i.domain for i in ctx.all_intents()))


def intent_summary(ctx: ExecutionContext) -> dict:
    """Queue sizes and breakdowns, for reports and dry-run output."""
    intents = ctx.all_intents()
    return {
        "total": len(intents),
        "updates": len(ctx.updates),
        "logs": len(ctx.logs),
        "replace_ops": len(ctx.replace_ops),
        "by_domain": dict(Counter(i.domain for i in intents)),
        "by_collection": dict(Counter(i.collection for i in intents)),
        "by_kind": dict(Counter(i.kind.value for i in intents)),
    }


def clear_all_intents(ctx: ExecutionContext) -> int:
    """Empty all three queues. Returns how many intents were dropped."""
    count = total_intent_count(ctx)
    ctx.clear_intents()
    if count:
        logger.debug("Cleared %d queued intents for cycle %d", count, ctx.cycle)
    return count
