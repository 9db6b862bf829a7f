"""Issue detectors and the analyzer that aggregates them."""

from .base import Detector
from .detectors import (
    ComponentDetector,
    ConfigurationDetector,
    HydrationDetector,
    NextJsDetector,
    PatternDetector,
    TestingDetector,
    default_detectors,
)
from .issues import IssueAnalyzer

__all__ = [
    "ComponentDetector",
    "ConfigurationDetector",
    "Detector",
    "HydrationDetector",
    "IssueAnalyzer",
    "NextJsDetector",
    "PatternDetector",
    "TestingDetector",
    "default_detectors",
]
