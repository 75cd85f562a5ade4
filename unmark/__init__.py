"""
Unmark Package
==============
Removes a known, fixed-position watermark from photographs.

Modules:
    - core: Pure algorithm logic (no Qt dependencies)
    - workers: QThread workers for async processing

Usage:
    from unmark.core import WatermarkRemover, EngineConfig
    from unmark.workers import RemoveWorker, ManualRepairWorker
"""

__version__ = "1.0.0"
__app_name__ = "Unmark"

# Core exports
from .core import (
    EngineConfig, ProcessOutcome, ProcessStatus, WatermarkRemover,
    load_mask_assets, select_mask, detect_watermark, unblend, manual_repair
)
# Worker exports
from .workers import (
    RemoveWorker, RemoveConfig, RemoveResult,
    ManualRepairWorker, ManualRepairConfig, ManualRepairResult
)

__all__ = [
    # Version info
    "__version__",
    "__app_name__",

    # Core
    "EngineConfig",
    "ProcessOutcome",
    "ProcessStatus",
    "WatermarkRemover",
    "load_mask_assets",
    "select_mask",
    "detect_watermark",
    "unblend",
    "manual_repair",

    # Workers
    "RemoveWorker",
    "RemoveConfig",
    "RemoveResult",
    "ManualRepairWorker",
    "ManualRepairConfig",
    "ManualRepairResult",
]
