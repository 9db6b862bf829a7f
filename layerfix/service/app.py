"""FastAPI application entrypoint for layerfix service mode."""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Dict, List, Optional, TypeVar

from fastapi import Depends, FastAPI
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from ..models import AnalysisReport, PipelineResult
from ..orchestrator import OrchestrationFailure, Orchestrator

_T = TypeVar("_T")


class AnalyzeRequest(BaseModel):
    code: str
    file_path: Optional[str] = None


class FixRequest(BaseModel):
    code: str
    file_path: Optional[str] = None
    layers: Optional[List[int]] = None
    dry_run: bool = False
    fail_fast: bool = False
    use_ast: bool = True
    use_cache: bool = True
    include_snapshots: bool = False


class LayerInfo(BaseModel):
    id: int
    name: str
    description: str
    dependencies: List[int] = Field(default_factory=list)
    supports_ast: bool
    critical: bool


class HealthResponse(BaseModel):
    status: str


def _default_orchestrator() -> Orchestrator:
    return Orchestrator()


async def _in_executor(func: Callable[[], _T]) -> _T:
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, func)


def create_app(
    orchestrator_factory: Callable[[], Orchestrator] = _default_orchestrator,
) -> FastAPI:
    """Create the FastAPI application exposing layerfix operations."""

    app = FastAPI(title="Layerfix Service", version="1.0.0")
    # One orchestrator per app so the skip cache survives across requests.
    shared: Dict[str, Orchestrator] = {}

    async def get_orchestrator() -> Orchestrator:
        if "orchestrator" not in shared:
            shared["orchestrator"] = orchestrator_factory()
        return shared["orchestrator"]

    @app.get("/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        return HealthResponse(status="ok")

    @app.get("/layers", response_model=List[LayerInfo])
    async def list_layers(orchestrator: Orchestrator = Depends(get_orchestrator)) -> List[LayerInfo]:
        registry = orchestrator.registry
        return [
            LayerInfo(
                id=descriptor.id,
                name=descriptor.name,
                description=descriptor.description,
                dependencies=sorted(descriptor.dependencies),
                supports_ast=descriptor.supports_ast,
                critical=descriptor.critical,
            )
            for descriptor in (registry.descriptor(layer_id) for layer_id in registry.layer_ids)
        ]

    @app.post("/analyze")
    async def analyze(
        payload: AnalyzeRequest,
        orchestrator: Orchestrator = Depends(get_orchestrator),
    ) -> Dict[str, Any]:
        def _run_analyze() -> AnalysisReport:
            return orchestrator.analyze(payload.code, payload.file_path)

        report = await _in_executor(_run_analyze)
        return report.to_dict()

    @app.post("/fix")
    async def fix(
        payload: FixRequest,
        orchestrator: Orchestrator = Depends(get_orchestrator),
    ) -> Dict[str, Any]:
        options = orchestrator.default_options(
            dry_run=payload.dry_run,
            fail_fast=payload.fail_fast,
            use_ast=payload.use_ast,
            use_cache=payload.use_cache,
        )

        def _run_fix() -> PipelineResult:
            return orchestrator.run(payload.code, payload.layers, options, file_path=payload.file_path)

        result = await _in_executor(_run_fix)
        return result.to_dict(include_snapshots=payload.include_snapshots)

    @app.exception_handler(OrchestrationFailure)
    async def orchestration_failure_handler(_: Any, exc: OrchestrationFailure) -> JSONResponse:
        return JSONResponse(status_code=422, content={"detail": exc.report.message, "error": exc.report.to_dict()})

    return app


def run_service(host: str = "127.0.0.1", port: int = 8000) -> None:  # pragma: no cover - integration path
    import uvicorn

    uvicorn.run(create_app(), host=host, port=port)


__all__ = ["create_app", "run_service"]
