"""Base classes for issue detectors."""

from abc import ABC, abstractmethod
from typing import Iterable, Optional

from ..models import DetectedIssue


class Detector(ABC):
    """Contract for detectors that report one category of fixable issues."""

    category: str = ""
    layer_id: int = 0

    def supports(self, code: str, file_path: Optional[str]) -> bool:
        """Return True when this detector should inspect the file."""
        return True

    @abstractmethod
    def detect(self, code: str, file_path: Optional[str]) -> Iterable[DetectedIssue]:
        """Produce issues this detector's layer can fix."""
