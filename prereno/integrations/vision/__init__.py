"""
Photo analysis integration
==========================

Public re-exports for the condition detector clients.
"""

from .conditionDetector import (
    StaticConditionDetector,
    VisionConditionDetector,
    VisionError,
    normalize_tag,
)

__all__ = [
    "StaticConditionDetector",
    "VisionConditionDetector",
    "VisionError",
    "normalize_tag",
]
