"""Execution Context — everything one cycle invocation owns."""

import random
from datetime import datetime
from typing import Dict, List, Optional, Set

from pydantic import BaseModel, Field, PrivateAttr

from cycle_kernel.models.arc import Arc, ArcTransition
from cycle_kernel.models.calendar import CalendarContext
from cycle_kernel.models.hook import Hook
from cycle_kernel.models.intent import WriteIntent


class CycleMode(BaseModel):
    """Flags that change how a cycle persists, never what it computes."""

    dry_run: bool = False           # Plan and report, write nothing
    replay: bool = False            # Regenerate a past cycle for comparison
    strict: bool = False            # First persistence error aborts the flush
    profile: bool = False           # Record per-phase timings
    replay_cycle: Optional[int] = None

    @property
    def writes_enabled(self) -> bool:
        return not (self.dry_run or self.replay)


class ExecutionContext(BaseModel):
    """
    Per-cycle working state. Created once per cycle invocation and
    discarded after the flush or an explicit abort.

    The three queues are flushed separately: replace_ops first,
    then updates, then logs.
    """

    cycle: int = Field(ge=1)
    mode: CycleMode = CycleMode()
    calendar: CalendarContext = CalendarContext()
    seed: int = 0

    # Write-intent queues
    updates: List[WriteIntent] = []
    logs: List[WriteIntent] = []
    replace_ops: List[WriteIntent] = []

    # Working state reconstructed from history
    arcs: Dict[str, Arc] = {}
    retired_arc_ids: Set[str] = set()
    archived_hook_ids: Set[str] = set()
    hooks: Dict[str, Hook] = {}
    cooldowns: Dict[str, int] = {}

    # Store observations captured by the start-of-cycle scan
    collection_headers: Dict[str, List[str]] = {}
    existing_collections: Set[str] = set()
    last_rows: Dict[str, int] = {}

    advanced_arc_ids: Set[str] = set()
    arc_transitions: List[ArcTransition] = []
    phase_timings_ms: Dict[str, float] = {}
    started_at: datetime = Field(default_factory=datetime.utcnow)

    _sequence: int = PrivateAttr(default=0)
    _rng: Optional[random.Random] = PrivateAttr(default=None)

    def next_sequence(self) -> int:
        self._sequence += 1
        return self._sequence

    @property
    def rng(self) -> random.Random:
        """Cycle RNG. Same seed, same draws: a replayed cycle sees what the original saw."""
        if self._rng is None:
            self._rng = random.Random(self.seed)
        return self._rng

    def rng_for(self, salt: str) -> random.Random:
        """Independent stream for one generator, stable regardless of call order."""
        return random.Random(f"{self.seed}:{salt}")

    def all_intents(self) -> List[WriteIntent]:
        return self.replace_ops + self.updates + self.logs

    def clear_intents(self) -> None:
        self.updates.clear()
        self.logs.clear()
        self.replace_ops.clear()

    def live_arcs(self) -> List[Arc]:
        return [a for a in self.arcs.values() if a.is_live]

    def collection_exists(self, collection: str) -> bool:
        return collection in self.existing_collections
