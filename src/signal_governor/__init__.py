"""Signal Governor: gated decisions and escalating alerts from operational signals."""

__version__ = "0.1.0"

from signal_governor.alerts.dispatcher import AlertDispatcher
from signal_governor.catalog.loader import ActionCatalog, CatalogError, default_catalog, load_catalog
from signal_governor.config import ConfigError, GovernorConfig, find_config, load_config
from signal_governor.decision.executor import (
    ActionExecutor,
    ActionHandler,
    DryRunHandler,
    SafetyViolationError,
)
from signal_governor.decision.learner import LearningConfig, OutcomeLearner
from signal_governor.decision.synthesizer import DecisionSynthesizer, SafetyThresholds
from signal_governor.engine import CycleReport, Governor
from signal_governor.models import (
    Alert,
    AlertStatus,
    DecisionAction,
    HealthStatus,
    Outcome,
    Severity,
    Signal,
    SystemContext,
)
from signal_governor.store import JsonlRecordStore, MemoryRecordStore, RecordStore, StoreError

__all__ = [
    "ActionCatalog",
    "ActionExecutor",
    "ActionHandler",
    "Alert",
    "AlertDispatcher",
    "AlertStatus",
    "CatalogError",
    "ConfigError",
    "CycleReport",
    "DecisionAction",
    "DecisionSynthesizer",
    "default_catalog",
    "DryRunHandler",
    "find_config",
    "Governor",
    "GovernorConfig",
    "HealthStatus",
    "JsonlRecordStore",
    "LearningConfig",
    "load_catalog",
    "load_config",
    "MemoryRecordStore",
    "Outcome",
    "OutcomeLearner",
    "RecordStore",
    "SafetyThresholds",
    "SafetyViolationError",
    "Severity",
    "Signal",
    "StoreError",
    "SystemContext",
    "__version__",
]
