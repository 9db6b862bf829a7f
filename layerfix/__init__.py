"""Ordered, validated fix layers for JavaScript and TypeScript sources."""

from .orchestrator import FileOutcome, OrchestrationFailure, Orchestrator
from .pipeline import CatastrophicError, ExecutionPipeline, PipelineOptions

__version__ = "0.1.0"

__all__ = [
    "CatastrophicError",
    "ExecutionPipeline",
    "FileOutcome",
    "OrchestrationFailure",
    "Orchestrator",
    "PipelineOptions",
    "__version__",
]
