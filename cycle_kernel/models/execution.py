"""Execution Result — outcome of flushing a cycle's write intents."""

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel


class CollectionError(BaseModel):
    """A store failure scoped to one collection."""

    collection: str
    kind: str                               # "replace" | "update" | "log"
    message: str


class ExecutionResult(BaseModel):
    """What a flush wrote (or, in dry-run / replay, would have written)."""

    cells_written: int = 0
    ranges_written: int = 0
    rows_appended: int = 0
    rows_replaced: int = 0
    write_calls: int = 0
    intents_applied: int = 0
    intents_skipped: int = 0
    errors: List[CollectionError] = []
    by_collection: Dict[str, int] = {}
    dry_run: bool = False
    replay: bool = False
    aborted: bool = False
    started_at: datetime
    finished_at: Optional[datetime] = None
    duration_seconds: float = 0.0

    @property
    def success(self) -> bool:
        return not self.errors and not self.aborted


class ReplayComparison(BaseModel):
    """Checksum comparison between a replayed cycle and its original run."""

    cycle: int
    match: bool
    original_checksum: Optional[str] = None
    current_checksum: str
    differences: List[str] = []
    error: Optional[str] = None


class CycleReport(BaseModel):
    """Summary of one cycle invocation."""

    cycle: int
    dry_run: bool
    replay: bool
    seed: int
    live_arcs: int
    arcs_created: int = 0
    arc_transitions: List[dict] = []
    hooks_processed: int = 0
    hooks_expired: int = 0
    hooks_decayed: int = 0
    hooks_archived: int = 0
    active_cooldowns: str = "none"
    generators_ran: List[str] = []
    generator_errors: List[str] = []
    intent_summary: dict = {}
    execution: ExecutionResult
    replay_comparison: Optional[ReplayComparison] = None
    phase_timings_ms: Dict[str, float] = {}
