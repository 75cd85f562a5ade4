"""
Test script for worker threads and the command-line entry point.

Run with: python -m pytest tests/test_workers.py -v
"""

import sys
import tempfile
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

import numpy as np
import pytest
from PIL import Image

from PyQt6.QtCore import QCoreApplication, QEventLoop, QTimer

from unmark.core.buffers import open_pixel_buffer, save_pixel_buffer
from unmark.core.engine import EngineConfig, ProcessStatus
from unmark.core.events import EventRecorder
from unmark.core.masks import preprocess_mask
from unmark.workers import (
    ManualRepairConfig, ManualRepairWorker, RemoveConfig, RemoveResult, RemoveWorker,
    output_path_for, process_batch
)

import main as cli

# Global QCoreApplication instance
_app = None


def get_app():
    """Get or create the Qt application instance."""
    global _app
    if _app is None:
        _app = QCoreApplication.instance() or QCoreApplication(sys.argv[:1])
    return _app


def wait_for_signal(signal, timeout_ms: int = 30000):
    """
    Wait for a Qt signal with timeout.

    Returns:
        The value emitted by the signal, or None if timeout.
    """
    get_app()
    loop = QEventLoop()
    result = [None]

    def on_signal(*args):
        result[0] = args[0] if len(args) == 1 else args
        loop.quit()

    signal.connect(on_signal)

    # Setup timeout
    timer = QTimer()
    timer.setSingleShot(True)
    timer.timeout.connect(loop.quit)
    timer.start(timeout_ms)

    loop.exec()
    timer.stop()

    return result[0]


def make_stencil(size: int = 48, peak: int = 127) -> np.ndarray:
    yy, xx = np.mgrid[0:size, 0:size]
    center = (size - 1) / 2
    radius = np.hypot(xx - center, yy - center)
    glyph = np.clip(1.0 - np.abs(radius - size * 0.3) / (size * 0.12), 0, 1)
    gray = np.round(glyph * peak).astype(np.uint8)
    gray[gray < 3] = 0
    return np.dstack([gray, gray, gray])


def make_photo(width: int, height: int, color=(90, 120, 150)) -> np.ndarray:
    image = np.empty((height, width, 4), dtype=np.uint8)
    image[..., :3] = color
    image[..., 3] = 255
    return image


def add_watermark(image: np.ndarray, stencil: np.ndarray, margin: int) -> np.ndarray:
    mask = preprocess_mask(stencil, margin)
    height, width = image.shape[:2]
    offset_x, offset_y = mask.offset_in(width, height)
    alpha = mask.alpha_fraction()[..., np.newaxis]
    region = image[offset_y:offset_y + mask.height, offset_x:offset_x + mask.width, :3]
    blended = region.astype(np.float64) * (1.0 - alpha) + 255.0 * alpha
    region[...] = np.floor(blended + 0.5).astype(np.uint8)
    return image


@pytest.fixture
def workspace():
    """
    Temporary directory with a mask folder (48 px stencil only) and
    a set of input images covering every outcome.
    """
    with tempfile.TemporaryDirectory() as tmp:
        root = Path(tmp)
        mask_dir = root / "masks"
        mask_dir.mkdir()
        stencil = make_stencil()
        Image.fromarray(stencil).save(mask_dir / "mask_48.png")

        inputs = root / "inputs"
        inputs.mkdir()
        original = make_photo(300, 300)
        save_pixel_buffer(add_watermark(original.copy(), stencil, 32), inputs / "marked.png")
        save_pixel_buffer(make_photo(300, 300), inputs / "clean.png")
        save_pixel_buffer(make_photo(40, 40), inputs / "tiny.png")
        save_pixel_buffer(make_photo(1100, 1100), inputs / "large.png")
        (inputs / "broken.png").write_bytes(b"not a png")

        yield {
            "root": root,
            "mask_dir": mask_dir,
            "inputs": inputs,
            "output": root / "output",
            "original": original,
        }


def make_config(ws, names, **kwargs) -> RemoveConfig:
    return RemoveConfig(
        image_paths=[ws["inputs"] / name for name in names],
        output_dir=ws["output"],
        engine=EngineConfig(mask_dir=ws["mask_dir"]),
        **kwargs
    )


# ===== Synchronous batch =====

def test_process_batch_outcomes(workspace):
    print("\n" + "=" * 50)
    print("Testing Batch Processing")
    print("=" * 50)

    names = ["marked.png", "clean.png", "tiny.png", "large.png", "broken.png"]
    progress_log = []
    results = process_batch(
        make_config(workspace, names),
        on_progress=lambda c, t, f: progress_log.append((c, t, f)),
    )

    assert [r.status for r in results] == [
        ProcessStatus.REMOVED,
        ProcessStatus.NO_WATERMARK,
        ProcessStatus.NO_WATERMARK,
        ProcessStatus.MASK_UNAVAILABLE,
        ProcessStatus.FAILED,
    ]
    assert [r.success for r in results] == [True, True, True, True, False]
    assert [r.needs_manual for r in results] == [False, True, True, True, True]
    assert progress_log[0] == (1, 5, "marked.png")
    assert progress_log[-1] == (5, 5, "broken.png")

    removed = results[0]
    assert removed.mask_size == 48
    assert removed.output_path == output_path_for(workspace["inputs"] / "marked.png", workspace["output"])
    restored = open_pixel_buffer(removed.output_path)
    assert np.abs(restored.astype(int) - workspace["original"].astype(int)).max() <= 1

    # No watermark: written unchanged
    assert np.array_equal(open_pixel_buffer(results[1].output_path), make_photo(300, 300))
    assert results[2].detection.fits is False

    # No stencil for the 96 px class, nothing written
    assert results[3].output_path is None
    assert results[4].error_message
    print("✅ Every outcome reported, batch not aborted")


def test_process_batch_skip_unmarked_and_force(workspace):
    results = process_batch(make_config(workspace, ["clean.png"], keep_unmarked=False))
    assert results[0].status == ProcessStatus.NO_WATERMARK
    assert results[0].output_path is None

    results = process_batch(make_config(workspace, ["clean.png"], skip_detection=True))
    assert results[0].status == ProcessStatus.REMOVED
    assert results[0].output_path.exists()


def test_process_batch_cancellation_between_images(workspace):
    seen = []
    results = process_batch(
        make_config(workspace, ["marked.png", "clean.png", "tiny.png"]),
        should_cancel=lambda: len(seen) >= 1,
        on_result=seen.append,
    )

    assert len(results) == 1
    assert results[0].source_path.name == "marked.png"


def test_process_batch_reports_events(workspace):
    recorder = EventRecorder()
    process_batch(make_config(workspace, ["marked.png"]), events=recorder)

    assert recorder.last("mask.load_failed")["nominal_size"] == 96
    assert recorder.last("detect.result")["present"] is True
    assert recorder.last("unblend.done")["processed"] > 0


# ===== Remove worker =====

def test_remove_worker(workspace):
    get_app()
    worker = RemoveWorker(make_config(workspace, ["marked.png", "large.png"]))

    progress_log = []
    completed = []
    worker.progress.connect(lambda c, t, f: progress_log.append((c, t, f)))
    worker.image_completed.connect(completed.append)

    worker.start()
    results = wait_for_signal(worker.finished_all)
    worker.wait()

    assert results is not None, "Worker timed out"
    assert len(results) == 2
    result: RemoveResult = results[0]
    assert result.success, f"Removal failed: {result.error_message}"
    assert result.status == ProcessStatus.REMOVED
    assert result.output_path.exists()
    assert results[1].status == ProcessStatus.MASK_UNAVAILABLE
    assert len(completed) == 2
    assert progress_log == [(1, 2, "marked.png"), (2, 2, "large.png")]


def test_remove_worker_cancelled_before_start(workspace):
    get_app()
    worker = RemoveWorker(make_config(workspace, ["marked.png", "clean.png"]))
    worker.cancel()

    worker.start()
    results = wait_for_signal(worker.finished_all)
    worker.wait()

    assert results == []


def test_remove_worker_without_masks(workspace):
    get_app()
    config = make_config(workspace, ["marked.png"])
    config.engine.mask_dir = workspace["root"] / "no-masks"
    worker = RemoveWorker(config)

    unavailable = []
    worker.masks_unavailable.connect(unavailable.append)
    worker.start()
    results = wait_for_signal(worker.finished_all)
    worker.wait()

    assert unavailable == [[96, 48]]
    assert results[0].status == ProcessStatus.MASK_UNAVAILABLE


def test_remove_worker_empty_queue():
    get_app()
    worker = RemoveWorker(RemoveConfig(image_paths=[]))

    errors = []
    worker.error.connect(errors.append)
    worker.start()
    results = wait_for_signal(worker.finished_all)
    worker.wait()

    assert results == []
    assert errors == ["No images to process"]


# ===== Manual repair worker =====

def test_manual_repair_worker(workspace):
    get_app()
    image_path = workspace["inputs"] / "marked.png"
    overlay = open_pixel_buffer(image_path)
    overlay[250:270, 240:280, :3] = (255, 77, 77)
    overlay_path = save_pixel_buffer(overlay, workspace["root"] / "overlay.png")
    output_path = workspace["output"] / "repaired.png"

    worker = ManualRepairWorker(ManualRepairConfig(
        image_path=image_path,
        overlay_path=overlay_path,
        output_path=output_path,
        seed=5,
    ))
    worker.start()
    result = wait_for_signal(worker.result_ready)
    worker.wait()

    assert result is not None, "Worker timed out"
    assert result.success, result.error_message
    repaired = open_pixel_buffer(result.output_path)
    original = open_pixel_buffer(image_path)

    # Marker gone, everything else identical to the input
    assert not np.any(np.all(repaired[250:270, 240:280, :3] == (255, 77, 77), axis=-1))
    untouched = np.ones(repaired.shape[:2], dtype=bool)
    untouched[250:270, 240:280] = False
    assert np.array_equal(repaired[untouched], original[untouched])


def test_manual_repair_worker_missing_overlay(workspace):
    get_app()
    worker = ManualRepairWorker(ManualRepairConfig(
        image_path=workspace["inputs"] / "clean.png",
        overlay_path=workspace["root"] / "missing.png",
        output_path=workspace["output"] / "never.png",
    ))

    errors = []
    worker.error.connect(errors.append)
    worker.start()
    result = wait_for_signal(worker.result_ready)
    worker.wait()

    assert result.success is False
    assert "missing.png" in result.error_message
    assert len(errors) == 1


# ===== Command line =====

def test_cli_batch(workspace, capsys):
    get_app()
    code = cli.main([
        str(workspace["inputs"] / "marked.png"),
        "-o", str(workspace["output"]),
        "--mask-dir", str(workspace["mask_dir"]),
    ])

    assert code == 0
    assert (workspace["output"] / "marked_watermark_removed.png").exists()
    assert "1 removed" in capsys.readouterr().out


def test_cli_reports_failures(workspace):
    get_app()
    code = cli.main([
        str(workspace["inputs"] / "broken.png"),
        "-o", str(workspace["output"]),
        "--mask-dir", str(workspace["mask_dir"]),
    ])
    assert code == 1

    code = cli.main([str(workspace["inputs"] / "nope.png"), "-o", str(workspace["output"])])
    assert code == 2
