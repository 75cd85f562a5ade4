"""
Watermark Detection
===================
Decides whether the stencil footprint of an image actually holds the
watermark before anything destructive happens.

Principle: the mark is translucent white, so the covered pixels are
brighter than their surroundings. The alpha-weighted luminance under
the stencil is compared with the plain luminance of two reference bands
directly left of and above the footprint.
"""

from dataclasses import dataclass
from typing import Optional

import numpy as np

from .buffers import ensure_pixel_buffer
from .events import EventHook, emit
from .masks import MaskAsset, luminance

# Minimum brightness gain (0-255 luma) counted as a watermark
DETECTION_THRESHOLD = 10.0

# Stencil pixels at or below this coverage are ignored
COVERAGE_THRESHOLD = 0.1

# Averages used when a region has no samples
EMPTY_WATERMARK_BRIGHTNESS = 0.0
NEUTRAL_REFERENCE = 128.0


@dataclass
class DetectionResult:
    """Outcome of one detection pass."""
    watermark_brightness: float
    reference_brightness: float
    difference: float
    present: bool
    fits: bool = True
    offset_x: int = 0
    offset_y: int = 0

    def __bool__(self) -> bool:
        return self.present


class WatermarkDetector:
    """
    Brightness-differential watermark detector.

    Args:
        threshold: Minimum difference between the watermark region and
                   the reference bands for a positive result.
    """

    def __init__(self, threshold: float = DETECTION_THRESHOLD):
        self.threshold = threshold

    def analyze(
            self,
            image: np.ndarray,
            mask: MaskAsset,
            events: Optional[EventHook] = None
    ) -> DetectionResult:
        """
        Measure both regions and apply the threshold.

        An image too small for the stencil at its anchor yields
        ``present=False`` and ``fits=False`` without sampling.
        """
        ensure_pixel_buffer(image)
        img_h, img_w = image.shape[:2]
        offset_x, offset_y = mask.offset_in(img_w, img_h)

        if offset_x < 0 or offset_y < 0:
            emit(events, "detect.geometry_mismatch", offset_x=offset_x, offset_y=offset_y)
            return DetectionResult(
                watermark_brightness=EMPTY_WATERMARK_BRIGHTNESS,
                reference_brightness=NEUTRAL_REFERENCE,
                difference=EMPTY_WATERMARK_BRIGHTNESS - NEUTRAL_REFERENCE,
                present=False,
                fits=False,
                offset_x=offset_x,
                offset_y=offset_y,
            )

        watermark_brightness = self._watermark_brightness(image, mask, offset_x, offset_y)
        reference_brightness = self._reference_brightness(image, mask, offset_x, offset_y)
        difference = watermark_brightness - reference_brightness

        result = DetectionResult(
            watermark_brightness=watermark_brightness,
            reference_brightness=reference_brightness,
            difference=difference,
            present=difference > self.threshold,
            offset_x=offset_x,
            offset_y=offset_y,
        )
        emit(
            events, "detect.result",
            watermark_brightness=result.watermark_brightness,
            reference_brightness=result.reference_brightness,
            difference=result.difference,
            threshold=self.threshold,
            present=result.present,
        )
        return result

    def detect(
            self,
            image: np.ndarray,
            mask: MaskAsset,
            events: Optional[EventHook] = None
    ) -> bool:
        return self.analyze(image, mask, events).present

    @staticmethod
    def _watermark_brightness(
            image: np.ndarray,
            mask: MaskAsset,
            offset_x: int,
            offset_y: int
    ) -> float:
        img_h, img_w = image.shape[:2]
        width = min(mask.width, img_w - offset_x)
        height = min(mask.height, img_h - offset_y)
        if width <= 0 or height <= 0:
            return EMPTY_WATERMARK_BRIGHTNESS

        alpha = mask.alpha_fraction()[:height, :width]
        region = image[offset_y:offset_y + height, offset_x:offset_x + width, :3]

        covered = alpha > COVERAGE_THRESHOLD
        weights = alpha[covered]
        total_weight = weights.sum()
        if total_weight <= 0:
            return EMPTY_WATERMARK_BRIGHTNESS

        brightness = luminance(region)[covered]
        return float((brightness * weights).sum() / total_weight)

    @staticmethod
    def _reference_brightness(
            image: np.ndarray,
            mask: MaskAsset,
            offset_x: int,
            offset_y: int
    ) -> float:
        img_h, img_w = image.shape[:2]
        sample_size = min(mask.width, mask.height)
        bottom = min(offset_y + mask.height, img_h)
        right = min(offset_x + mask.width, img_w)

        left_band = image[offset_y:bottom, max(0, offset_x - sample_size):offset_x, :3]
        top_band = image[max(0, offset_y - sample_size):offset_y, offset_x:right, :3]

        count = left_band.shape[0] * left_band.shape[1] + top_band.shape[0] * top_band.shape[1]
        if count == 0:
            return NEUTRAL_REFERENCE

        total = luminance(left_band).sum() + luminance(top_band).sum()
        return float(total / count)


def detect_watermark(
        image: np.ndarray,
        mask: MaskAsset,
        threshold: float = DETECTION_THRESHOLD,
        events: Optional[EventHook] = None
) -> bool:
    """Return True when the footprint of ``mask`` looks watermarked."""
    return WatermarkDetector(threshold).detect(image, mask, events)
