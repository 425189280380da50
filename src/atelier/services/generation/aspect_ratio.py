"""Aspect ratio normalization for the hosted model families.

The studio offers eight ratios; each model family accepts only a subset.
"""

from enum import Enum


class ModelFamily(str, Enum):
    IMAGE = "IMAGE"
    VIDEO = "VIDEO"


STUDIO_ASPECT_RATIOS = ("1:1", "3:4", "4:3", "4:5", "5:4", "9:16", "16:9", "9:21")

IMAGE_ASPECT_RATIOS = ("1:1", "3:4", "4:3", "9:16", "16:9")
VIDEO_ASPECT_RATIOS = ("16:9", "9:16")

_IMAGE_FALLBACKS = {
    "4:5": "3:4",
    "5:4": "4:3",
    "9:21": "9:16",
}

_WIDE_RATIOS = frozenset({"16:9", "4:3", "5:4", "1:1"})


def normalize_aspect_ratio(ratio: str, family: ModelFamily | str) -> str:
    """Map a requested ratio to the nearest one the model family supports.

    Args:
        ratio: Requested ratio, e.g. "4:5"
        family: IMAGE or VIDEO

    Returns:
        A ratio from IMAGE_ASPECT_RATIOS or VIDEO_ASPECT_RATIOS

    Examples:
        >>> normalize_aspect_ratio("4:5", ModelFamily.IMAGE)
        '3:4'
        >>> normalize_aspect_ratio("1:1", ModelFamily.VIDEO)
        '16:9'
    """
    family = ModelFamily(family)

    if family is ModelFamily.VIDEO:
        return "16:9" if ratio in _WIDE_RATIOS else "9:16"

    if ratio in IMAGE_ASPECT_RATIOS:
        return ratio
    return _IMAGE_FALLBACKS.get(ratio, "1:1")
