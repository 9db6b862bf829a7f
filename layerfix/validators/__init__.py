"""Validation package for candidate layer output."""

from .base import (
    DEFAULT_CORRUPTION_PATTERNS,
    CorruptionPattern,
    ValidationResult,
    Validator,
    load_corruption_patterns,
)
from .transformation import TransformationValidator

__all__ = [
    "CorruptionPattern",
    "DEFAULT_CORRUPTION_PATTERNS",
    "TransformationValidator",
    "ValidationResult",
    "Validator",
    "load_corruption_patterns",
]
