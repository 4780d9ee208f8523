"""Kernel configuration — all tunable parameters live here, not in code."""

from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, Field


class PhaseThresholds(BaseModel):
    """Tension levels at which an arc takes its next phase step."""

    rising_at: float = 3.0      # early -> rising when tension >= this
    peak_at: float = 5.0        # rising -> peak when tension >= this
    decline_at: float = 4.0     # peak -> decline when tension <= this
    resolve_at: float = 1.5     # decline -> resolved when tension <= this


class ArcConfig(BaseModel):
    thresholds: PhaseThresholds = PhaseThresholds()
    max_tension_delta: float = Field(gt=0, default=5.0)
    max_active_arcs: Optional[int] = 10
    initial_tension: float = Field(ge=0, le=10, default=0.0)


class HookConfig(BaseModel):
    default_expires_after: int = Field(ge=1, default=5)
    decay_rate: float = Field(ge=0, default=0.1)
    min_severity: int = Field(ge=1, le=10, default=1)
    decay_after_age: int = 2    # Decay applies only when age > this


class CooldownConfig(BaseModel):
    base_duration: int = 2
    high_severity_duration: int = 3
    low_severity_duration: int = 1
    high_severities: List[str] = ["high", "major", "critical"]
    low_severities: List[str] = ["low"]
    priority_domains: List[str] = ["HEALTH", "SAFETY", "INFRASTRUCTURE"]
    long_cooldown_domains: List[str] = ["CULTURE", "COMMUNITY", "MICRO"]


class CollectionNames(BaseModel):
    arc_ledger: str = "Event_Arc_Ledger"
    hook_deck: str = "Story_Hook_Deck"
    hook_archive: str = "Story_Hook_Archive"
    cooldowns: str = "Domain_Cooldowns"
    cycle_seeds: str = "Cycle_Seeds"


class KernelConfig(BaseModel):
    """Complete kernel configuration."""

    arcs: ArcConfig = ArcConfig()
    hooks: HookConfig = HookConfig()
    cooldowns: CooldownConfig = CooldownConfig()
    collections: CollectionNames = CollectionNames()
    cycle_schedule: Optional[str] = None            # Cron expression, e.g. "0 6 * * 1"
    heartbeat_interval_seconds: int = 3600          # Used when no schedule is set


def load_config(path: str) -> KernelConfig:
    """Load a KernelConfig from a JSON file. Missing keys keep their defaults."""
    return KernelConfig.model_validate_json(Path(path).read_text())
