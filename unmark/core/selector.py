"""
Mask Selection
==============
Picks the stencil size class for an image from an ordered rule table.

The default table reproduces the two watermark sizes of the source
compositor: images larger than 1024 px on both sides carry the 96 px
mark, everything else the 48 px mark. Adding a finer stencil only
means adding a rule.
"""

from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

from .events import EventHook, emit
from .masks import MaskAsset, MaskRepository


@dataclass(frozen=True)
class SelectionRule:
    """Matches when width > min_width and height > min_height."""
    min_width: int
    min_height: int
    nominal_size: int

    def matches(self, width: int, height: int) -> bool:
        return width > self.min_width and height > self.min_height


DEFAULT_SELECTION_RULES: Tuple[SelectionRule, ...] = (
    SelectionRule(min_width=1024, min_height=1024, nominal_size=96),
    SelectionRule(min_width=0, min_height=0, nominal_size=48),
)


class MaskSelector:
    """Evaluates selection rules in order; the first match wins."""

    def __init__(self, rules: Sequence[SelectionRule] = DEFAULT_SELECTION_RULES):
        if not rules:
            raise ValueError("At least one selection rule is required")
        self.rules = tuple(rules)

    def nominal_size_for(self, width: int, height: int) -> Optional[int]:
        for rule in self.rules:
            if rule.matches(width, height):
                return rule.nominal_size
        return None

    def select(
            self,
            width: int,
            height: int,
            repository: MaskRepository,
            events: Optional[EventHook] = None
    ) -> Optional[MaskAsset]:
        """
        Return the stencil for an image of this size.

        Returns:
            The MaskAsset, or None when the size class has no loaded
            stencil (the caller should offer manual repair).
        """
        nominal_size = self.nominal_size_for(width, height)
        mask = repository.get(nominal_size) if nominal_size is not None else None

        emit(
            events, "mask.selected",
            image_size=f"{width}x{height}",
            nominal_size=nominal_size,
            found=mask is not None,
        )
        return mask


def select_mask(
        width: int,
        height: int,
        repository: MaskRepository,
        rules: Sequence[SelectionRule] = DEFAULT_SELECTION_RULES,
        events: Optional[EventHook] = None
) -> Optional[MaskAsset]:
    """Convenience wrapper around MaskSelector.select."""
    return MaskSelector(rules).select(width, height, repository, events)
