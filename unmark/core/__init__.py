"""
Core Module - Pure Algorithm Logic
==================================
This module contains no Qt dependencies.
Mask loading, detection, reverse alpha blending and manual repair are
implemented here and operate on RGBA numpy buffers.
"""

from .buffers import (
    ensure_pixel_buffer, to_pixel_buffer, from_pixel_buffer,
    open_pixel_buffer, save_pixel_buffer
)
from .detector import DETECTION_THRESHOLD, DetectionResult, WatermarkDetector, detect_watermark
from .engine import EngineConfig, ProcessOutcome, ProcessStatus, WatermarkRemover
from .events import EventHook, EventRecorder, print_event
from .manual import MARK_THRESHOLD, ManualInpainter, MarkCanvas, find_marked_pixels, manual_repair
from .masks import (
    DEFAULT_MASK_CONFIGS, MaskAsset, MaskConfig, MaskLoadFailure, MaskRepository,
    load_mask_assets, preprocess_mask
)
from .selector import DEFAULT_SELECTION_RULES, MaskSelector, SelectionRule, select_mask
from .unblend import ALPHA_INTENSITY, AlphaUnblender, UnblendStats, unblend

__all__ = [
    # Buffers
    "ensure_pixel_buffer",
    "to_pixel_buffer",
    "from_pixel_buffer",
    "open_pixel_buffer",
    "save_pixel_buffer",
    # Masks
    "DEFAULT_MASK_CONFIGS",
    "MaskAsset",
    "MaskConfig",
    "MaskLoadFailure",
    "MaskRepository",
    "load_mask_assets",
    "preprocess_mask",
    # Selection
    "DEFAULT_SELECTION_RULES",
    "MaskSelector",
    "SelectionRule",
    "select_mask",
    # Detection
    "DETECTION_THRESHOLD",
    "DetectionResult",
    "WatermarkDetector",
    "detect_watermark",
    # Unblending
    "ALPHA_INTENSITY",
    "AlphaUnblender",
    "UnblendStats",
    "unblend",
    # Manual repair
    "MARK_THRESHOLD",
    "ManualInpainter",
    "MarkCanvas",
    "find_marked_pixels",
    "manual_repair",
    # Engine
    "EngineConfig",
    "ProcessOutcome",
    "ProcessStatus",
    "WatermarkRemover",
    # Events
    "EventHook",
    "EventRecorder",
    "print_event",
]
