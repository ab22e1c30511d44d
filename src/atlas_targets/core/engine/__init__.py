# src/atlas_targets/core/engine/__init__.py

from .report import RunReport, TargetOutcome
from .scheduler import Scheduler
from .staleness import load_upstream, outdated_targets

__all__ = ["RunReport", "Scheduler", "TargetOutcome", "load_upstream", "outdated_targets"]
