"""
Workers Module - Async Thread Management
========================================
Contains QThread workers for non-blocking watermark removal.

All heavy computations run in separate threads so a caller's event
loop stays responsive.

Components:
- RemoveWorker: Batch automatic removal with progress and cancellation
- ManualRepairWorker: Manual repair of one image from a painted overlay
"""

from .manual_worker import ManualRepairConfig, ManualRepairResult, ManualRepairWorker, repair_file
from .remove_worker import (
    RemoveConfig, RemoveResult, RemoveWorker, output_path_for, process_batch, process_image
)

__all__ = [
    # Remove
    "RemoveWorker",
    "RemoveConfig",
    "RemoveResult",
    "process_batch",
    "process_image",
    "output_path_for",
    # Manual
    "ManualRepairWorker",
    "ManualRepairConfig",
    "ManualRepairResult",
    "repair_file",
]
