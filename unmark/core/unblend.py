"""
Reverse Alpha Blending
======================
Recovers the pixels under the watermark by inverting the composite.

The watermark was applied as:

    composite = original * (1 - a) + watermark * a

so for every covered pixel:

    original = (composite - watermark * a) / (1 - a)

Technical Notes:
- a = clamp(mask_alpha / 255 * intensity, 0, MAX_ALPHA)
- Pixels with a < MIN_ALPHA are left alone (no real coverage)
- Pixels with 1 - a < MIN_ALPHA cannot be inverted and are only counted
- Footprint pixels outside the image are skipped one by one
- Only the footprint is touched; the alpha channel is never written
"""

from dataclasses import dataclass
from typing import Optional

import numpy as np

from .buffers import ensure_pixel_buffer
from .events import EventHook, emit
from .masks import MaskAsset

# Default multiplier on the stencil alpha. Raise it (e.g. 1.2) when the
# mark is not fully removed, lower it (e.g. 0.8) when a dark ghost remains.
ALPHA_INTENSITY = 1.0

MIN_ALPHA = 0.01
MAX_ALPHA = 0.99


@dataclass
class UnblendStats:
    """Pixel counters of one unblend pass."""
    processed: int = 0
    skipped_low_alpha: int = 0
    unrecoverable: int = 0
    out_of_bounds: int = 0
    mask_pixels: int = 0


class AlphaUnblender:
    """
    Inverts the known alpha composite inside the stencil footprint.

    Args:
        intensity: Multiplier applied to the stencil alpha.
    """

    def __init__(self, intensity: float = ALPHA_INTENSITY):
        self.intensity = intensity

    def unblend(
            self,
            image: np.ndarray,
            mask: MaskAsset,
            events: Optional[EventHook] = None
    ) -> UnblendStats:
        """
        Rewrite the footprint of ``image`` in place.

        Returns:
            UnblendStats describing what was processed or skipped.
        """
        ensure_pixel_buffer(image)
        img_h, img_w = image.shape[:2]
        offset_x, offset_y = mask.offset_in(img_w, img_h)

        stats = UnblendStats(mask_pixels=mask.width * mask.height)

        # Intersection of the footprint with the image, in mask coordinates
        mx0 = max(0, -offset_x)
        my0 = max(0, -offset_y)
        mx1 = min(mask.width, img_w - offset_x)
        my1 = min(mask.height, img_h - offset_y)

        if mx1 <= mx0 or my1 <= my0:
            stats.out_of_bounds = stats.mask_pixels
            self._report(events, stats)
            return stats

        stats.out_of_bounds = stats.mask_pixels - (mx1 - mx0) * (my1 - my0)

        alpha = mask.alpha_fraction()[my0:my1, mx0:mx1] * self.intensity
        alpha = np.clip(alpha, 0.0, MAX_ALPHA)
        inv_alpha = 1.0 - alpha

        low = alpha < MIN_ALPHA
        opaque = ~low & (inv_alpha < MIN_ALPHA)
        valid = ~low & ~opaque

        stats.skipped_low_alpha = int(np.count_nonzero(low))
        stats.unrecoverable = int(np.count_nonzero(opaque))
        stats.processed = int(np.count_nonzero(valid))

        if stats.processed:
            region = image[offset_y + my0:offset_y + my1, offset_x + mx0:offset_x + mx1, :3]
            watermark = mask.rgb[my0:my1, mx0:mx1].astype(np.float64)
            composite = region.astype(np.float64)

            a = alpha[..., np.newaxis]
            original = (composite - watermark * a) / (1.0 - a)
            original = np.clip(np.floor(original + 0.5), 0, 255).astype(np.uint8)

            region[valid] = original[valid]

        self._report(events, stats)
        return stats

    def _report(self, events: Optional[EventHook], stats: UnblendStats):
        emit(
            events, "unblend.done",
            processed=stats.processed,
            skipped_low_alpha=stats.skipped_low_alpha,
            unrecoverable=stats.unrecoverable,
            out_of_bounds=stats.out_of_bounds,
            mask_pixels=stats.mask_pixels,
            intensity=self.intensity,
        )


def unblend(
        image: np.ndarray,
        mask: MaskAsset,
        intensity: float = ALPHA_INTENSITY,
        events: Optional[EventHook] = None
) -> np.ndarray:
    """
    Remove the watermark under ``mask`` from ``image``.

    Mutates the buffer in place and returns the same object.
    """
    AlphaUnblender(intensity).unblend(image, mask, events)
    return image
