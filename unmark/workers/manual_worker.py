"""
Manual Repair Worker - Async Manual Repair
==========================================
QThread worker for repairing one image from a user-painted overlay.

Workflow:
1. Load the original image and the painted overlay
2. Replace every marked pixel by a neighbouring original pixel
3. Save the result and emit it
"""

import traceback
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import numpy as np
from PyQt6.QtCore import QThread, pyqtSignal

from unmark.core.buffers import open_pixel_buffer, save_pixel_buffer
from unmark.core.events import EventHook
from unmark.core.manual import MARK_THRESHOLD, SAMPLE_OFFSET, ManualInpainter


@dataclass
class ManualRepairConfig:
    """Configuration for manual repair of one image."""
    image_path: Path
    overlay_path: Path
    output_path: Path
    seed: Optional[int] = None
    mark_threshold: int = MARK_THRESHOLD
    sample_offset: int = SAMPLE_OFFSET


@dataclass
class ManualRepairResult:
    """Result of a manual repair."""
    source_path: Path
    output_path: Optional[Path] = None
    success: bool = False
    error_message: str = ""


def repair_file(
        config: ManualRepairConfig,
        events: Optional[EventHook] = None
) -> Path:
    """
    Repair ``config.image_path`` using the marks in ``config.overlay_path``.

    Raises:
        FileNotFoundError: If an input file is missing.
        ValueError: If the overlay size differs from the image.

    Returns:
        Path of the written PNG.
    """
    original = open_pixel_buffer(config.image_path)
    overlay = open_pixel_buffer(config.overlay_path)

    # The painted overlay is the canvas being repaired
    inpainter = ManualInpainter(
        mark_threshold=config.mark_threshold,
        sample_offset=config.sample_offset,
        rng=np.random.default_rng(config.seed),
    )
    repaired = inpainter.repair(overlay, original, overlay, events)

    return save_pixel_buffer(repaired, config.output_path)


class ManualRepairWorker(QThread):
    """
    Worker thread for manual repair of one image.

    Signals:
        started_repair(str): Emitted when repair starts (filename)
        result_ready(ManualRepairResult): Emitted with the result
        error(str): Emitted on errors
    """

    # Signals
    started_repair = pyqtSignal(str)  # filename
    result_ready = pyqtSignal(object)  # ManualRepairResult
    error = pyqtSignal(str)  # Error message

    def __init__(
            self,
            config: ManualRepairConfig,
            events: Optional[EventHook] = None,
            parent=None
    ):
        super().__init__(parent)
        self.config = config
        self.events = events

    def run(self):
        result = ManualRepairResult(source_path=Path(self.config.image_path))

        try:
            self.started_repair.emit(result.source_path.name)
            result.output_path = repair_file(self.config, self.events)
            result.success = True

        except Exception as e:
            result.success = False
            result.error_message = str(e)
            self.error.emit(f"Manual repair failed: {str(e)}")
            traceback.print_exc()

        self.result_ready.emit(result)
