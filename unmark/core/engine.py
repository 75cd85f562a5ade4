"""
Removal Engine
==============
Ties the stages together for one image:

    select stencil -> detect -> reverse alpha blend

Every negative outcome (no stencil for the size class, no watermark
detected) is reported as a status that tells the caller to offer
manual repair instead; nothing here aborts a batch.
"""

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional, Sequence, Union

import numpy as np

from .buffers import ensure_pixel_buffer
from .detector import DETECTION_THRESHOLD, DetectionResult, WatermarkDetector
from .events import EventHook
from .manual import MARK_THRESHOLD, SAMPLE_OFFSET, ManualInpainter
from .masks import (
    DEFAULT_MASK_CONFIGS, DEFAULT_MASK_DIR, MaskConfig, MaskRepository,
    load_mask_assets
)
from .selector import DEFAULT_SELECTION_RULES, MaskSelector, SelectionRule
from .unblend import ALPHA_INTENSITY, AlphaUnblender, UnblendStats


class ProcessStatus(str, Enum):
    REMOVED = "removed"
    NO_WATERMARK = "no_watermark"
    MASK_UNAVAILABLE = "mask_unavailable"
    FAILED = "failed"


@dataclass
class EngineConfig:
    """Tunable settings of the removal engine."""
    mask_dir: Optional[Union[str, Path]] = DEFAULT_MASK_DIR
    mask_configs: Sequence[MaskConfig] = DEFAULT_MASK_CONFIGS
    selection_rules: Sequence[SelectionRule] = DEFAULT_SELECTION_RULES
    detection_threshold: float = DETECTION_THRESHOLD
    alpha_intensity: float = ALPHA_INTENSITY
    mark_threshold: int = MARK_THRESHOLD
    sample_offset: int = SAMPLE_OFFSET
    load_workers: int = 1


@dataclass
class ProcessOutcome:
    """Result of automatic processing for one image."""
    status: ProcessStatus
    image: np.ndarray
    mask_size: Optional[int] = None
    detection: Optional[DetectionResult] = None
    stats: Optional[UnblendStats] = None

    @property
    def needs_manual(self) -> bool:
        """True when the caller should offer manual repair."""
        return self.status != ProcessStatus.REMOVED


class WatermarkRemover:
    """
    Automatic watermark removal with a manual fallback.

    The repository is read-only after loading, so one remover can be
    shared by threads processing different images.
    """

    def __init__(
            self,
            repository: MaskRepository,
            config: Optional[EngineConfig] = None,
            events: Optional[EventHook] = None
    ):
        self.repository = repository
        self.config = config or EngineConfig()
        self.events = events

        self.selector = MaskSelector(self.config.selection_rules)
        self.detector = WatermarkDetector(self.config.detection_threshold)
        self.unblender = AlphaUnblender(self.config.alpha_intensity)

    @classmethod
    def from_config(
            cls,
            config: Optional[EngineConfig] = None,
            events: Optional[EventHook] = None
    ) -> "WatermarkRemover":
        """Load the configured stencils and build a remover."""
        config = config or EngineConfig()
        repository = load_mask_assets(
            config.mask_configs,
            mask_dir=config.mask_dir,
            events=events,
            max_workers=config.load_workers,
        )
        return cls(repository, config, events)

    @property
    def automatic_available(self) -> bool:
        return not self.repository.is_empty

    def process(self, image: np.ndarray, skip_detection: bool = False) -> ProcessOutcome:
        """
        Remove the watermark from ``image`` in place if one is found.

        Args:
            image: RGBA pixel buffer.
            skip_detection: Unblend even if detection is negative.

        Returns:
            ProcessOutcome; ``image`` is only modified when the status
            is REMOVED.
        """
        ensure_pixel_buffer(image)
        height, width = image.shape[:2]

        mask = self.selector.select(width, height, self.repository, self.events)
        if mask is None:
            return ProcessOutcome(ProcessStatus.MASK_UNAVAILABLE, image)

        detection = self.detector.analyze(image, mask, self.events)
        if not detection.present and not skip_detection:
            return ProcessOutcome(
                ProcessStatus.NO_WATERMARK, image,
                mask_size=mask.nominal_size,
                detection=detection,
            )

        stats = self.unblender.unblend(image, mask, self.events)
        return ProcessOutcome(
            ProcessStatus.REMOVED, image,
            mask_size=mask.nominal_size,
            detection=detection,
            stats=stats,
        )

    def manual_repair(
            self,
            image: np.ndarray,
            original: np.ndarray,
            overlay: np.ndarray,
            rng: Optional[np.random.Generator] = None
    ) -> np.ndarray:
        """Repair the marked pixels of ``image`` from ``original``."""
        inpainter = ManualInpainter(
            mark_threshold=self.config.mark_threshold,
            sample_offset=self.config.sample_offset,
            rng=rng,
        )
        return inpainter.repair(image, original, overlay, self.events)
