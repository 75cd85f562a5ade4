"""
Mask Assets
===========
Loads the known watermark stencils and turns them into alpha masks.

Technical Notes:
- Stencils are authored as "black background, white glyph": brightness
  encodes how strongly the watermark covers each pixel
- Preprocessing keeps the stencil size exactly (no resampling)
- Alpha = round(0.299 R + 0.587 G + 0.114 B), colour is fixed white
- A stencil that fails to load is recorded and skipped; the repository
  may end up partial or empty, which means "manual mode only"
"""

import io
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple, Union

import numpy as np
from PIL import Image, UnidentifiedImageError

from .events import EventHook, emit

# Watermark colour of every stencil currently shipped
WATERMARK_COLOR: Tuple[int, int, int] = (255, 255, 255)

# Modes that carry an 8-bit black/white stencil
ACCEPTED_MASK_MODES = ("RGB", "RGBA", "L", "P")

# Directory holding the stencil files by default
DEFAULT_MASK_DIR = Path(__file__).resolve().parent.parent / "assets"

MaskSource = Union[str, Path, bytes]


@dataclass(frozen=True, eq=False)
class MaskAsset:
    """
    A preprocessed stencil.

    ``alpha`` is an (height, width) uint8 array of blend weights and
    ``rgb`` an (height, width, 3) uint8 array of watermark colour. Both
    arrays are read-only; one asset is shared by every image.
    """
    width: int
    height: int
    margin: int
    alpha: np.ndarray
    rgb: np.ndarray
    nominal_size: Optional[int] = None

    def offset_in(self, image_width: int, image_height: int) -> Tuple[int, int]:
        """
        Top-left corner of the footprint inside an image.

        The footprint is anchored ``margin`` pixels in from the
        bottom-right corner. Either value may be negative when the image
        is too small for this stencil.
        """
        return (
            image_width - self.width - self.margin,
            image_height - self.height - self.margin,
        )

    def alpha_fraction(self) -> np.ndarray:
        """Blend weights scaled to [0, 1] as float64."""
        return self.alpha.astype(np.float64) / 255.0


@dataclass
class MaskConfig:
    """One stencil to load: size class, file path or raw bytes, margin."""
    nominal_size: int
    source: MaskSource
    margin: int

    def resolve(self, mask_dir: Optional[Path] = None) -> "MaskConfig":
        """Return a copy whose relative path is resolved against ``mask_dir``."""
        if isinstance(self.source, (bytes, bytearray)) or mask_dir is None:
            return self
        path = Path(self.source)
        if path.is_absolute():
            return self
        return MaskConfig(self.nominal_size, Path(mask_dir) / path, self.margin)


DEFAULT_MASK_CONFIGS: Tuple[MaskConfig, ...] = (
    MaskConfig(nominal_size=96, source="mask_96.png", margin=64),
    MaskConfig(nominal_size=48, source="mask_48.png", margin=32),
)


@dataclass
class MaskLoadFailure:
    """Record of a stencil that could not be loaded."""
    nominal_size: int
    source: str
    reason: str


@dataclass
class MaskRepository:
    """
    Loaded stencils keyed by nominal size.

    Attributes:
        loaded: nominal size -> MaskAsset for every stencil that loaded.
        failures: one MaskLoadFailure per stencil that did not.
    """
    loaded: Dict[int, MaskAsset] = field(default_factory=dict)
    failures: List[MaskLoadFailure] = field(default_factory=list)

    def get(self, nominal_size: int) -> Optional[MaskAsset]:
        return self.loaded.get(nominal_size)

    @property
    def failed_sizes(self) -> List[int]:
        return [failure.nominal_size for failure in self.failures]

    @property
    def is_empty(self) -> bool:
        """True when automatic removal is unavailable (manual mode only)."""
        return not self.loaded

    def __len__(self) -> int:
        return len(self.loaded)

    def __contains__(self, nominal_size: int) -> bool:
        return nominal_size in self.loaded


def _round_half_up(values: np.ndarray) -> np.ndarray:
    return np.floor(values + 0.5)


def luminance(rgb: np.ndarray) -> np.ndarray:
    """Rec. 601 luma of an (..., 3) array, as float64 without rounding."""
    rgb = rgb.astype(np.float64)
    return 0.299 * rgb[..., 0] + 0.587 * rgb[..., 1] + 0.114 * rgb[..., 2]


def preprocess_mask(
        stencil: np.ndarray,
        margin: int = 0,
        nominal_size: Optional[int] = None,
        events: Optional[EventHook] = None
) -> MaskAsset:
    """
    Convert a black/white stencil into a MaskAsset.

    Args:
        stencil: (height, width, 3) or (height, width, 4) uint8 array.
                 Only the RGB channels are read.
        margin: Distance of the footprint from the bottom-right corner.
        nominal_size: Size class the asset belongs to.
        events: Optional event hook.

    Returns:
        MaskAsset with the same width and height as the stencil.
    """
    if stencil.ndim != 3 or stencil.shape[2] not in (3, 4):
        raise ValueError(f"Stencil must have shape (height, width, 3|4), got {stencil.shape}")
    if margin < 0:
        raise ValueError("Mask margin cannot be negative")

    height, width = stencil.shape[:2]
    alpha = _round_half_up(luminance(stencil[..., :3])).clip(0, 255).astype(np.uint8)
    rgb = np.empty((height, width, 3), dtype=np.uint8)
    rgb[...] = WATERMARK_COLOR

    alpha.setflags(write=False)
    rgb.setflags(write=False)

    total = width * height
    covered = int(np.count_nonzero(alpha > 10))
    emit(
        events, "mask.preprocessed",
        size=f"{width}x{height}",
        max_luminance=int(alpha.max()) if total else 0,
        min_luminance=int(alpha.min()) if total else 0,
        covered_pixels=covered,
        coverage=(covered / total * 100) if total else 0.0,
    )

    return MaskAsset(
        width=width,
        height=height,
        margin=margin,
        alpha=alpha,
        rgb=rgb,
        nominal_size=nominal_size,
    )


def decode_stencil(source: MaskSource) -> np.ndarray:
    """
    Decode a stencil file or byte string into an RGB array.

    Fully transparent pixels of an RGBA stencil count as black.

    Raises:
        FileNotFoundError: If a path does not exist.
        ValueError: If the image cannot be decoded or uses another encoding.
    """
    if isinstance(source, (bytes, bytearray)):
        stream = io.BytesIO(source)
    else:
        path = Path(source)
        if not path.exists():
            raise FileNotFoundError(f"Mask not found: {path}")
        stream = path

    try:
        with Image.open(stream) as img:
            if img.mode not in ACCEPTED_MASK_MODES:
                raise ValueError(f"Unsupported mask encoding: {img.mode}")
            rgba = np.array(img.convert("RGBA"), dtype=np.uint8)
    except UnidentifiedImageError as e:
        raise ValueError(f"Cannot decode mask: {e}")

    rgb = rgba[..., :3].copy()
    rgb[rgba[..., 3] == 0] = 0
    return rgb


def _describe(source: MaskSource) -> str:
    if isinstance(source, (bytes, bytearray)):
        return f"<{len(source)} bytes>"
    return str(source)


def _load_one(
        config: MaskConfig,
        events: Optional[EventHook]
) -> Union[MaskAsset, MaskLoadFailure]:
    try:
        stencil = decode_stencil(config.source)
        asset = preprocess_mask(stencil, config.margin, config.nominal_size, events)
    except (OSError, ValueError) as e:
        failure = MaskLoadFailure(config.nominal_size, _describe(config.source), str(e))
        emit(
            events, "mask.load_failed",
            nominal_size=failure.nominal_size,
            source=failure.source,
            reason=failure.reason,
        )
        return failure

    emit(
        events, "mask.loaded",
        nominal_size=config.nominal_size,
        width=asset.width,
        height=asset.height,
        margin=asset.margin,
    )
    return asset


def load_mask_assets(
        configs: Iterable[MaskConfig] = DEFAULT_MASK_CONFIGS,
        mask_dir: Optional[Union[str, Path]] = DEFAULT_MASK_DIR,
        events: Optional[EventHook] = None,
        max_workers: int = 1
) -> MaskRepository:
    """
    Load and preprocess every configured stencil.

    Never raises for a bad stencil: failures are collected in the
    returned repository and the remaining stencils still load.

    Args:
        configs: Stencils to load, in order.
        mask_dir: Directory relative paths are resolved against.
        events: Optional event hook.
        max_workers: Decode stencils on this many threads (1 = sequential).

    Returns:
        MaskRepository, possibly partial or empty.
    """
    mask_dir = Path(mask_dir) if mask_dir is not None else None
    resolved = [config.resolve(mask_dir) for config in configs]

    if max_workers > 1 and len(resolved) > 1:
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            outcomes = list(executor.map(lambda c: _load_one(c, events), resolved))
    else:
        outcomes = [_load_one(config, events) for config in resolved]

    repository = MaskRepository()
    for config, outcome in zip(resolved, outcomes):
        if isinstance(outcome, MaskLoadFailure):
            repository.failures.append(outcome)
        else:
            repository.loaded[config.nominal_size] = outcome

    return repository
