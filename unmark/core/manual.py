"""
Manual Repair
=============
Fallback for images the automatic path cannot handle: no stencil for
the size class, a negative detection the user disagrees with, or a
processing error.

The user paints over the watermark with a red marker (MarkCanvas). Every
pixel whose red channel dominates green and blue by more than the mark
threshold is replaced with the original pixel 20 positions to the left
or right, picked at random per pixel.

Technical Notes:
- Offsets are taken in the flat row-major pixel index, so a sample near
  a row edge may come from the neighbouring row
- Samples always come from the untouched original, never from the
  buffer being repaired
- The random source is injectable (numpy Generator) for repeatable runs
"""

from typing import List, Optional, Sequence, Tuple

import cv2
import numpy as np

from .buffers import ensure_pixel_buffer
from .events import EventHook, emit

# Red must exceed green and blue by more than this to count as marked
MARK_THRESHOLD = 20

# Horizontal displacement (pixels) of the sampled neighbour
SAMPLE_OFFSET = 20

# Marker brush
MARKER_COLOR: Tuple[int, int, int] = (255, 77, 77)
MARKER_OPACITY = 0.5
DEFAULT_BRUSH_SIZE = 20


def find_marked_pixels(overlay: np.ndarray, threshold: int = MARK_THRESHOLD) -> np.ndarray:
    """
    Flat indices of pixels painted with the marker.

    Args:
        overlay: RGBA buffer the user painted on.
        threshold: Required red dominance over green and blue.

    Returns:
        1-D int64 array of row-major pixel indices.
    """
    ensure_pixel_buffer(overlay, "overlay")
    rgb = overlay[..., :3].astype(np.int16)
    r, g, b = rgb[..., 0], rgb[..., 1], rgb[..., 2]
    marked = (r > g + threshold) & (r > b + threshold)
    return np.flatnonzero(marked)


class ManualInpainter:
    """
    Neighbour-sampling repair of user-marked pixels.

    Args:
        mark_threshold: Red dominance needed for a pixel to be marked.
        sample_offset: Displacement of the sampled pixel.
        rng: numpy Generator; a fresh unseeded one is used when omitted.
    """

    def __init__(
            self,
            mark_threshold: int = MARK_THRESHOLD,
            sample_offset: int = SAMPLE_OFFSET,
            rng: Optional[np.random.Generator] = None
    ):
        self.mark_threshold = mark_threshold
        self.sample_offset = sample_offset
        self.rng = rng if rng is not None else np.random.default_rng()

    def repair(
            self,
            image: np.ndarray,
            original: np.ndarray,
            overlay: np.ndarray,
            events: Optional[EventHook] = None
    ) -> np.ndarray:
        """
        Repair marked pixels of ``image`` in place.

        ``overlay`` may be the same buffer as ``image`` (the painted
        canvas itself); marks are located before anything is written.

        Raises:
            ValueError: If the three buffers differ in size.

        Returns:
            ``image``
        """
        ensure_pixel_buffer(image)
        ensure_pixel_buffer(original, "original")
        ensure_pixel_buffer(overlay, "overlay")
        if not (image.shape == original.shape == overlay.shape):
            raise ValueError(
                f"Buffer sizes differ: image {image.shape[:2]}, "
                f"original {original.shape[:2]}, overlay {overlay.shape[:2]}"
            )

        marked = find_marked_pixels(overlay, self.mark_threshold)
        total = image.shape[0] * image.shape[1]

        signs = self.rng.choice(np.array([-1, 1]), size=marked.size)
        sources = marked + signs * self.sample_offset
        in_bounds = (sources >= 0) & (sources < total)

        targets = marked[in_bounds]
        sources = sources[in_bounds]

        flat_image = image.reshape(total, 4)
        flat_original = original.reshape(total, 4)
        flat_image[targets, :3] = flat_original[sources, :3]

        if not np.shares_memory(flat_image, image):
            image[...] = flat_image.reshape(image.shape)

        emit(
            events, "manual.done",
            marked=int(marked.size),
            repaired=int(targets.size),
            skipped=int(marked.size - targets.size),
        )
        return image


def manual_repair(
        image: np.ndarray,
        original: np.ndarray,
        mark_overlay: np.ndarray,
        rng: Optional[np.random.Generator] = None,
        mark_threshold: int = MARK_THRESHOLD,
        sample_offset: int = SAMPLE_OFFSET,
        events: Optional[EventHook] = None
) -> np.ndarray:
    """Convenience wrapper around ManualInpainter.repair."""
    inpainter = ManualInpainter(mark_threshold, sample_offset, rng)
    return inpainter.repair(image, original, mark_overlay, events)


class MarkCanvas:
    """
    Paintable copy of an image for marking the watermark by hand.

    Each stroke is a round-capped polyline blended over the canvas as a
    single layer, so overlapping segments of one stroke do not darken.
    The last HISTORY_LIMIT states are kept for undo.
    """

    HISTORY_LIMIT = 5

    def __init__(
            self,
            image: np.ndarray,
            brush_size: int = DEFAULT_BRUSH_SIZE,
            color: Tuple[int, int, int] = MARKER_COLOR,
            opacity: float = MARKER_OPACITY
    ):
        ensure_pixel_buffer(image)
        self.brush_size = brush_size
        self.color = color
        self.opacity = opacity
        self._canvas = image.copy()
        self._history: List[np.ndarray] = [self._canvas.copy()]

    @property
    def brush_size(self) -> int:
        return self._brush_size

    @brush_size.setter
    def brush_size(self, value: int):
        if value < 1:
            raise ValueError("Brush size must be at least 1 pixel")
        self._brush_size = int(value)

    @property
    def overlay(self) -> np.ndarray:
        """Copy of the painted canvas, ready for manual repair."""
        return self._canvas.copy()

    @property
    def can_undo(self) -> bool:
        return len(self._history) > 1

    def stroke(self, points: Sequence[Tuple[float, float]]):
        """Paint a stroke through ``points`` (x, y) in image coordinates."""
        if not points:
            return

        height, width = self._canvas.shape[:2]
        layer = np.zeros((height, width), dtype=np.uint8)
        pts = np.round(np.asarray(points, dtype=np.float64)).astype(np.int32)

        if len(pts) == 1:
            x, y = pts[0]
            cv2.circle(layer, (int(x), int(y)), max(1, self.brush_size // 2), 255, thickness=-1)
        else:
            cv2.polylines(layer, [pts.reshape(-1, 1, 2)], isClosed=False,
                          color=255, thickness=self.brush_size, lineType=cv2.LINE_8)

        painted = layer > 0
        rgb = self._canvas[..., :3]
        blended = rgb[painted].astype(np.float64) * (1.0 - self.opacity) \
            + np.asarray(self.color, dtype=np.float64) * self.opacity
        rgb[painted] = np.clip(np.floor(blended + 0.5), 0, 255).astype(np.uint8)

        self._save_history()

    def undo(self) -> bool:
        """Restore the state before the last stroke. Returns False if none."""
        if not self.can_undo:
            return False
        self._history.pop()
        self._canvas = self._history[-1].copy()
        return True

    def _save_history(self):
        self._history.append(self._canvas.copy())
        if len(self._history) > self.HISTORY_LIMIT:
            del self._history[0]
