"""
Hook Lifecycle — ages, expires, decays and archives story hooks.

Behavioral Contract:
- age = current cycle - created cycle, recomputed every cycle, never negative.
- A hook expires once age >= expires_after. is_expired is never cleared.
- Severity decays only once age > 2: max(1, severity - floor(age * 0.1)).
  It never increases.
- Expired hooks are copied to the archive collection when it exists;
  otherwise is_expired is the only marker. A hook whose id is already in
  the archive, or whose Archived flag is set, is never archived again.
- Pickup is recorded once. A picked-up hook keeps aging and decaying.
  Picking up a hook created this cycle rewrites its queued deck row.
"""

import logging
import math
from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import uuid4

from pydantic import BaseModel

from cycle_kernel.intents.queue import queue_cell
from cycle_kernel.ledger.replay import hook_age
from cycle_kernel.ledger.schema import HOOK_ARCHIVE_HEADERS, HOOK_DECK_HEADERS, hook_record
from cycle_kernel.ledger.writer import header_for, queue_ledger_rows
from cycle_kernel.models.config import HookConfig, KernelConfig
from cycle_kernel.models.context import ExecutionContext
from cycle_kernel.models.hook import Hook
from cycle_kernel.models.intent import IntentKind

logger = logging.getLogger(__name__)


class HookLifecycleReport(BaseModel):
    cycle: int
    processed: int = 0
    expired: List[str] = []
    decayed: List[str] = []
    archived: List[str] = []
    skipped_columns: List[str] = []


def update_age(hook: Hook, current_cycle: int) -> int:
    hook.age = hook_age(hook.created_cycle, current_cycle)
    return hook.age


def check_expiration(hook: Hook) -> bool:
    """True only on the cycle the hook first expires."""
    if hook.age >= hook.expires_after and not hook.is_expired:
        hook.is_expired = True
        return True
    return False


def decay_priority(hook: Hook, config: Optional[HookConfig] = None) -> bool:
    """Lower severity with age. Returns True if severity changed."""
    cfg = config or HookConfig()
    if hook.age <= cfg.decay_after_age:
        return False
    decayed = max(cfg.min_severity, hook.severity - math.floor(hook.age * cfg.decay_rate))
    if decayed >= hook.severity:
        return False
    hook.severity = decayed
    return True


class HookLifecycle:
    """Per-cycle hook processing. All storage effects go through the intent queue."""

    def __init__(self, config: Optional[KernelConfig] = None):
        self.config = config or KernelConfig()

    @property
    def deck(self) -> str:
        return self.config.collections.hook_deck

    @property
    def archive_collection(self) -> str:
        return self.config.collections.hook_archive

    def create(
        self,
        ctx: ExecutionContext,
        text: str,
        hook_type: str = "signal",
        domain: str = "",
        neighborhood: str = "",
        priority: int = 1,
        severity: int = 5,
        linked_arc_id: Optional[str] = None,
        expires_after: Optional[int] = None,
        hook_id: Optional[str] = None,
    ) -> Hook:
        """Mint a hook this cycle and queue its deck row."""
        hook = Hook(
            id=hook_id or f"hook_{uuid4().hex[:12]}",
            type=hook_type,
            domain=domain,
            neighborhood=neighborhood,
            priority=priority,
            severity=severity,
            text=text,
            linked_arc_id=linked_arc_id,
            created_cycle=ctx.cycle,
            expires_after=expires_after or self.config.hooks.default_expires_after,
        )
        queue_ledger_rows(
            ctx,
            self.deck,
            HOOK_DECK_HEADERS,
            [hook_record(hook, ctx.cycle, datetime.utcnow().isoformat())],
            reason=f"New {hook_type} hook {hook.id}",
            domain="media",
        )
        ctx.hooks[hook.id] = hook
        return hook

    def _queue_field(
        self,
        ctx: ExecutionContext,
        hook: Hook,
        column: str,
        value: Any,
        report: HookLifecycleReport,
    ) -> None:
        col = header_for(ctx, self.deck, HOOK_DECK_HEADERS).column(column)
        if col is None:
            if column not in report.skipped_columns:
                logger.warning("Hook deck has no %s column; updates to it are skipped", column)
                report.skipped_columns.append(column)
            return
        queue_cell(
            ctx,
            self.deck,
            hook.row,
            col,
            value,
            reason=f"Hook {hook.id} {column}",
            domain="media",
        )

    def run(self, ctx: ExecutionContext) -> HookLifecycleReport:
        """Age, expire, decay and archive every stored hook."""
        report = HookLifecycleReport(cycle=ctx.cycle)
        newly_expired: List[Hook] = []

        for hook in ctx.hooks.values():
            if hook.row is None:
                continue    # Created this cycle, not stored yet
            report.processed += 1

            old_age = hook.age
            update_age(hook, ctx.cycle)
            self._queue_field(ctx, hook, "HookAge", hook.age, report)

            if check_expiration(hook):
                newly_expired.append(hook)
                report.expired.append(hook.id)
                self._queue_field(ctx, hook, "IsExpired", True, report)

            if decay_priority(hook, self.config.hooks):
                report.decayed.append(hook.id)
                self._queue_field(ctx, hook, "Severity", hook.severity, report)

            logger.debug("Hook %s age %d -> %d", hook.id, old_age, hook.age)

        # Hooks that expired earlier but were never archived get another chance
        pending = [h for h in ctx.hooks.values() if h.is_expired and not h.archived and h.row]
        if pending:
            report.archived = [h.id for h in self.archive(ctx, pending)]

        logger.info(
            "Cycle %d hooks: %d processed, %d expired, %d decayed, %d archived",
            ctx.cycle,
            report.processed,
            len(report.expired),
            len(report.decayed),
            len(report.archived),
        )
        return report

    def archive(self, ctx: ExecutionContext, expired_hooks: List[Hook]) -> List[Hook]:
        """
        Copy expired hooks to the archive collection, once each.
        Without an archive collection nothing is written and is_expired
        stays the only marker.
        """
        if not ctx.collection_exists(self.archive_collection):
            return []

        to_archive = [
            h
            for h in expired_hooks
            if h.is_expired and not h.archived and h.id not in ctx.archived_hook_ids
        ]
        if not to_archive:
            return []

        timestamp = datetime.utcnow().isoformat()
        records: List[Dict[str, Any]] = []
        for hook in to_archive:
            hook.archived = True
            ctx.archived_hook_ids.add(hook.id)
            record = hook_record(hook, ctx.cycle, timestamp)
            record["ArchivedCycle"] = ctx.cycle
            records.append(record)

        queue_ledger_rows(
            ctx,
            self.archive_collection,
            HOOK_ARCHIVE_HEADERS,
            records,
            reason=f"Archive {len(records)} expired hooks",
            domain="media",
        )
        report = HookLifecycleReport(cycle=ctx.cycle)
        for hook in to_archive:
            if hook.row is not None:
                self._queue_field(ctx, hook, "Archived", True, report)
        return to_archive

    def mark_picked_up(self, ctx: ExecutionContext, hook_id: str, cycle: Optional[int] = None) -> bool:
        """Record the cycle a consumer used this hook. Only the first call counts."""
        hook = ctx.hooks.get(hook_id)
        if hook is None:
            raise KeyError(hook_id)
        if hook.pickup_cycle is not None:
            logger.info(
                "Hook %s already picked up in cycle %d; ignoring", hook_id, hook.pickup_cycle
            )
            return False

        hook.pickup_cycle = cycle if cycle is not None else ctx.cycle
        if hook.row is not None:
            self._queue_field(
                ctx, hook, "PickupCycle", hook.pickup_cycle, HookLifecycleReport(cycle=ctx.cycle)
            )
        elif not self._rewrite_queued_row(ctx, hook):
            logger.warning("Hook %s has no queued deck row; pickup kept in memory only", hook_id)
        return True

    def _rewrite_queued_row(self, ctx: ExecutionContext, hook: Hook) -> bool:
        """Swap a not-yet-flushed deck row for one built from the hook's current state."""
        index = header_for(ctx, self.deck, HOOK_DECK_HEADERS)
        for pos, intent in enumerate(ctx.updates):
            if intent.collection != self.deck or intent.kind != IntentKind.APPEND:
                continue
            rows = [list(r) for r in intent.values]
            for i, row in enumerate(rows):
                if index.get(row, "HookId") != hook.id:
                    continue
                record = hook_record(hook, ctx.cycle, index.get(row, "Timestamp", ""))
                rows[i] = index.encode(record)
                # Same sequence and priority, so flush order is unchanged
                ctx.updates[pos] = intent.model_copy(
                    update={"values": tuple(tuple(r) for r in rows)}
                )
                return True
        return False
