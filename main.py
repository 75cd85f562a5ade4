"""
Unmark - Main Entry Point
=========================
Command-line tool for removing a known watermark from photographs.

Usage:
    python main.py photo1.png photo2.jpg -o output/
    python main.py --manual photo.png --marks painted.png -o fixed.png

Architecture:
    - Model: unmark/core/ (pure algorithms)
    - Workers: unmark/workers/ (QThread batch processing)
    - Controller: This file (signal/slot connections, console output)

Features:
    - Automatic stencil selection by image size
    - Brightness-based detection before any pixel is changed
    - Reverse alpha blending of the watermark footprint
    - Manual repair from a red-painted overlay
    - Ctrl+C cancels the batch after the current image
"""

import argparse
import signal
import sys
from pathlib import Path
from typing import List, Optional

from PyQt6.QtCore import QCoreApplication, QTimer

from unmark import __app_name__, __version__
from unmark.core import (
    ALPHA_INTENSITY, DETECTION_THRESHOLD, EngineConfig, ProcessStatus, print_event
)
from unmark.workers import (
    RemoveWorker, RemoveConfig, RemoveResult,
    ManualRepairWorker, ManualRepairConfig, ManualRepairResult
)

STATUS_LABELS = {
    ProcessStatus.REMOVED: "watermark removed",
    ProcessStatus.NO_WATERMARK: "no watermark detected (try --manual)",
    ProcessStatus.MASK_UNAVAILABLE: "no mask for this size (try --manual)",
    ProcessStatus.FAILED: "failed (try --manual)",
}


class RemovalController:
    """
    Controller class that connects worker signals to console output.

    Responsibilities:
    - Validate user input before processing
    - Create and manage worker threads
    - Report worker progress/results
    - Quit the event loop with a proper exit code
    """

    def __init__(self, app: QCoreApplication, args: argparse.Namespace):
        self.app = app
        self.args = args
        self.exit_code = 0

        # Worker references (to prevent garbage collection)
        self._remove_worker: Optional[RemoveWorker] = None
        self._manual_worker: Optional[ManualRepairWorker] = None

        self._last_results: List[RemoveResult] = []

    # ===== Batch Removal =====

    def start_removal(self):
        image_paths = [Path(p) for p in self.args.images]
        missing = [p for p in image_paths if not p.exists()]
        if missing:
            self._fail(f"Image not found: {missing[0]}")
            return

        engine = EngineConfig(
            alpha_intensity=self.args.intensity,
            detection_threshold=self.args.threshold,
            load_workers=2,
        )
        if self.args.mask_dir:
            engine.mask_dir = Path(self.args.mask_dir)

        config = RemoveConfig(
            image_paths=image_paths,
            output_dir=Path(self.args.output),
            engine=engine,
            skip_detection=self.args.force,
            keep_unmarked=not self.args.skip_unmarked,
        )

        events = print_event if self.args.verbose else None
        self._remove_worker = RemoveWorker(config, events=events)

        # Connect worker signals
        self._remove_worker.progress.connect(self._on_progress)
        self._remove_worker.image_completed.connect(self._on_image_completed)
        self._remove_worker.masks_unavailable.connect(self._on_masks_unavailable)
        self._remove_worker.finished_all.connect(self._on_finished)
        self._remove_worker.error.connect(self._on_error)

        print(f"Processing {len(image_paths)} image(s)...")
        self._remove_worker.start()

    def cancel(self):
        if self._remove_worker is not None and self._remove_worker.isRunning():
            print("Cancelling after the current image...")
            self._remove_worker.cancel()

    def _on_progress(self, current: int, total: int, filename: str):
        print(f"[{current}/{total}] {filename}")

    def _on_image_completed(self, result: RemoveResult):
        if result.success:
            label = STATUS_LABELS[result.status]
            target = f" -> {result.output_path}" if result.output_path else ""
            print(f"    {label}{target}")
        else:
            print(f"    {STATUS_LABELS[ProcessStatus.FAILED]}: {result.error_message}")

    def _on_masks_unavailable(self, failed_sizes: list):
        print(f"No mask could be loaded (failed sizes: {failed_sizes}); "
              "automatic removal is unavailable, use --manual")

    def _on_finished(self, results: list):
        self._last_results = results
        removed = sum(1 for r in results if r.status == ProcessStatus.REMOVED)
        failed = sum(1 for r in results if not r.success)
        manual = sum(1 for r in results if r.success and r.needs_manual)

        print(f"Done: {removed} removed, {manual} need manual repair, {failed} failed "
              f"({len(results)}/{len(self.args.images)} processed)")

        if failed:
            self.exit_code = 1
        self._cleanup_remove_worker()
        self.app.exit(self.exit_code)

    def _on_error(self, error_message: str):
        print(f"Error: {error_message}", file=sys.stderr)
        self.exit_code = 1

    def _cleanup_remove_worker(self):
        if self._remove_worker:
            self._remove_worker.wait()
            self._remove_worker.deleteLater()
            self._remove_worker = None

    # ===== Manual Repair =====

    def start_manual(self):
        if not self.args.marks:
            self._fail("--manual requires --marks")
            return

        config = ManualRepairConfig(
            image_path=Path(self.args.manual),
            overlay_path=Path(self.args.marks),
            output_path=Path(self.args.output),
            seed=self.args.seed,
        )

        events = print_event if self.args.verbose else None
        self._manual_worker = ManualRepairWorker(config, events=events)
        self._manual_worker.result_ready.connect(self._on_manual_result)
        self._manual_worker.error.connect(self._on_error)
        self._manual_worker.start()

    def _on_manual_result(self, result: ManualRepairResult):
        if result.success:
            print(f"Repaired {result.source_path.name} -> {result.output_path}")
        else:
            self.exit_code = 1

        if self._manual_worker:
            self._manual_worker.wait()
            self._manual_worker.deleteLater()
            self._manual_worker = None
        self.app.exit(self.exit_code)

    def _fail(self, message: str):
        print(f"Error: {message}", file=sys.stderr)
        self.exit_code = 2
        QTimer.singleShot(0, lambda: self.app.exit(self.exit_code))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="unmark",
        description="Remove a known corner watermark by reverse alpha blending."
    )
    parser.add_argument("images", nargs="*", help="Images to process")
    parser.add_argument("-o", "--output", default="output",
                        help="Output directory (batch) or file (manual)")
    parser.add_argument("--mask-dir", help="Directory with mask_96.png and mask_48.png")
    parser.add_argument("--intensity", type=float, default=ALPHA_INTENSITY,
                        help="Alpha intensity multiplier (default: %(default)s)")
    parser.add_argument("--threshold", type=float, default=DETECTION_THRESHOLD,
                        help="Detection brightness threshold (default: %(default)s)")
    parser.add_argument("--force", action="store_true",
                        help="Remove even when no watermark is detected")
    parser.add_argument("--skip-unmarked", action="store_true",
                        help="Do not write images without a detected watermark")
    parser.add_argument("--manual", metavar="IMAGE", help="Repair IMAGE manually")
    parser.add_argument("--marks", metavar="OVERLAY",
                        help="Copy of IMAGE with the watermark painted red")
    parser.add_argument("--seed", type=int, help="Random seed for manual repair")
    parser.add_argument("-v", "--verbose", action="store_true",
                        help="Print processing statistics")
    parser.add_argument("--version", action="version",
                        version=f"{__app_name__} {__version__}")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Application entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.manual and not args.images:
        parser.error("no images given")

    # Create application
    app = QCoreApplication.instance() or QCoreApplication(sys.argv[:1])
    app.setApplicationName(__app_name__)
    app.setApplicationVersion(__version__)

    # Create controller (connects signals)
    controller = RemovalController(app, args)

    # Let Python see Ctrl+C while the Qt loop is running
    previous_handler = signal.signal(signal.SIGINT, lambda *_: controller.cancel())
    heartbeat = QTimer()
    heartbeat.timeout.connect(lambda: None)
    heartbeat.start(200)

    if args.manual:
        QTimer.singleShot(0, controller.start_manual)
    else:
        QTimer.singleShot(0, controller.start_removal)

    # Run event loop
    app.exec()
    heartbeat.stop()
    signal.signal(signal.SIGINT, previous_handler)
    return controller.exit_code


if __name__ == "__main__":
    sys.exit(main())
