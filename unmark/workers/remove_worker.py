"""
Remove Worker - Async Batch Watermark Removal
=============================================
QThread worker for removing the watermark from a queue of images.

Workflow:
1. Load the mask stencils once for the whole batch
2. For each image in the queue:
   a. Select stencil, detect, reverse alpha blend
   b. Save to output directory with proper naming
3. Emit progress signals during processing
4. Emit finished signal with results

Cancellation is checked between images: an image that has started is
always finished.

Naming Convention:
- filename_watermark_removed.png
"""

import traceback
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional

from PyQt6.QtCore import QThread, pyqtSignal

from unmark.core.buffers import open_pixel_buffer, save_pixel_buffer
from unmark.core.detector import DetectionResult
from unmark.core.engine import EngineConfig, ProcessStatus, WatermarkRemover
from unmark.core.events import EventHook
from unmark.core.unblend import UnblendStats

OUTPUT_SUFFIX = "_watermark_removed"


@dataclass
class RemoveConfig:
    """Complete configuration for a removal batch."""
    image_paths: List[Path] = field(default_factory=list)
    output_dir: Path = field(default_factory=lambda: Path.cwd() / "output")
    engine: EngineConfig = field(default_factory=EngineConfig)

    # Unblend even when detection is negative
    skip_detection: bool = False

    # Write images without a detected watermark unchanged
    keep_unmarked: bool = True


@dataclass
class RemoveResult:
    """Result of the removal for a single image."""
    source_path: Path
    output_path: Optional[Path] = None
    status: ProcessStatus = ProcessStatus.FAILED
    mask_size: Optional[int] = None
    detection: Optional[DetectionResult] = None
    stats: Optional[UnblendStats] = None
    success: bool = False
    error_message: str = ""

    @property
    def needs_manual(self) -> bool:
        return self.status != ProcessStatus.REMOVED


def output_path_for(source_path: Path, output_dir: Path) -> Path:
    return output_dir / f"{source_path.stem}{OUTPUT_SUFFIX}.png"


def process_image(
        remover: WatermarkRemover,
        image_path: Path,
        config: RemoveConfig
) -> RemoveResult:
    """
    Run automatic removal on one file.

    Exceptions are caught and reported in the result so sibling images
    keep processing.
    """
    image_path = Path(image_path)
    result = RemoveResult(source_path=image_path)

    try:
        image = open_pixel_buffer(image_path)
        outcome = remover.process(image, skip_detection=config.skip_detection)

        result.status = outcome.status
        result.mask_size = outcome.mask_size
        result.detection = outcome.detection
        result.stats = outcome.stats

        if outcome.status == ProcessStatus.REMOVED or (
                outcome.status == ProcessStatus.NO_WATERMARK and config.keep_unmarked):
            result.output_path = save_pixel_buffer(
                outcome.image, output_path_for(image_path, Path(config.output_dir))
            )

        result.success = True

    except Exception as e:
        result.status = ProcessStatus.FAILED
        result.success = False
        result.error_message = str(e)
        traceback.print_exc()

    return result


def process_batch(
        config: RemoveConfig,
        remover: Optional[WatermarkRemover] = None,
        events: Optional[EventHook] = None,
        should_cancel: Callable[[], bool] = lambda: False,
        on_progress: Optional[Callable[[int, int, str], None]] = None,
        on_result: Optional[Callable[[RemoveResult], None]] = None
) -> List[RemoveResult]:
    """
    Synchronous batch loop used by RemoveWorker.

    Args:
        config: Batch configuration.
        remover: Prebuilt remover; built from ``config.engine`` if None.
        events: Event hook for a remover built here.
        should_cancel: Polled before each image.
        on_progress: Called with (current, total, file name).
        on_result: Called with each RemoveResult.

    Returns:
        Results of the images processed before any cancellation.
    """
    if remover is None:
        remover = WatermarkRemover.from_config(config.engine, events)

    results: List[RemoveResult] = []
    total = len(config.image_paths)

    for idx, image_path in enumerate(config.image_paths):
        if should_cancel():
            break

        image_path = Path(image_path)
        if on_progress is not None:
            on_progress(idx + 1, total, image_path.name)

        result = process_image(remover, image_path, config)
        results.append(result)

        if on_result is not None:
            on_result(result)

    return results


class RemoveWorker(QThread):
    """
    Worker thread for removing watermarks from a batch of images.

    Signals:
        progress(int, int, str): (current, total, current_file_name)
        image_completed(RemoveResult): Emitted when each image is processed
        finished_all(list[RemoveResult]): Emitted when all images are done
        masks_unavailable(list): Emitted when no stencil could be loaded
                                 (failed nominal sizes); every image will
                                 need manual repair
        error(str): Emitted on critical errors
    """

    # Signals
    progress = pyqtSignal(int, int, str)  # current, total, filename
    image_completed = pyqtSignal(object)  # RemoveResult
    finished_all = pyqtSignal(list)  # List[RemoveResult]
    masks_unavailable = pyqtSignal(list)  # failed nominal sizes
    error = pyqtSignal(str)  # Error message

    def __init__(
            self,
            config: RemoveConfig,
            events: Optional[EventHook] = None,
            parent=None
    ):
        """
        Initialize the remove worker.

        Args:
            config: RemoveConfig with all removal settings.
            events: Optional event hook passed to the engine.
            parent: Optional parent QObject.
        """
        super().__init__(parent)
        self.config = config
        self.events = events
        self._is_cancelled = False

    def cancel(self):
        """Request cancellation of the worker."""
        self._is_cancelled = True

    def is_cancelled(self) -> bool:
        return self._is_cancelled

    def run(self):
        """
        Main worker execution.

        Processes all images in the config and emits progress signals.
        """
        results: List[RemoveResult] = []

        if not self.config.image_paths:
            self.error.emit("No images to process")
            self.finished_all.emit(results)
            return

        try:
            remover = WatermarkRemover.from_config(self.config.engine, self.events)
            if not remover.automatic_available:
                self.masks_unavailable.emit(remover.repository.failed_sizes)

            results = process_batch(
                self.config,
                remover=remover,
                should_cancel=self.is_cancelled,
                on_progress=self.progress.emit,
                on_result=self.image_completed.emit,
            )

        except Exception as e:
            self.error.emit(f"Critical error: {str(e)}")
            traceback.print_exc()

        # Emit final results
        self.finished_all.emit(results)
