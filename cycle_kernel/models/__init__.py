"""Cycle Kernel data models."""

from cycle_kernel.models.arc import PHASE_ORDER, Arc, ArcPhase, ArcTransition
from cycle_kernel.models.calendar import CalendarContext, DomainCalendarEffects
from cycle_kernel.models.config import (
    ArcConfig,
    CollectionNames,
    CooldownConfig,
    HookConfig,
    KernelConfig,
    PhaseThresholds,
    load_config,
)
from cycle_kernel.models.context import CycleMode, ExecutionContext
from cycle_kernel.models.execution import (
    CollectionError,
    CycleReport,
    ExecutionResult,
    ReplayComparison,
)
from cycle_kernel.models.hook import DEFAULT_EXPIRES_AFTER, Hook
from cycle_kernel.models.intent import (
    LOG_PRIORITY,
    REPLACE_PRIORITY,
    UPDATE_PRIORITY,
    CellAddress,
    IntentKind,
    WriteIntent,
)

__all__ = [
    "DEFAULT_EXPIRES_AFTER",
    "LOG_PRIORITY",
    "PHASE_ORDER",
    "REPLACE_PRIORITY",
    "UPDATE_PRIORITY",
    "Arc",
    "ArcConfig",
    "ArcPhase",
    "ArcTransition",
    "CalendarContext",
    "CellAddress",
    "CollectionError",
    "CollectionNames",
    "CooldownConfig",
    "CycleMode",
    "CycleReport",
    "DomainCalendarEffects",
    "ExecutionContext",
    "ExecutionResult",
    "Hook",
    "HookConfig",
    "IntentKind",
    "KernelConfig",
    "PhaseThresholds",
    "ReplayComparison",
    "WriteIntent",
    "load_config",
]
