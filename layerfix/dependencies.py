"""Layer dependency resolution and execution ordering."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from .layers.descriptors import LAYER_DESCRIPTORS, UnknownLayerError, check_descriptor_table
from .models import LayerDescriptor

# Issue categories (as emitted by detectors or typed by users) -> base layer.
_CATEGORY_TO_LAYER: Mapping[str, int] = {
    "config": 1,
    "configuration": 1,
    "pattern": 2,
    "patterns": 2,
    "entity": 2,
    "entities": 2,
    "component": 3,
    "components": 3,
    "hydration": 4,
    "ssr": 4,
    "nextjs": 5,
    "next.js": 5,
    "testing": 6,
}


@dataclass(frozen=True)
class ResolvedLayers:
    """Dependency-closed, ascending execution order for a requested layer set."""

    ordered: Tuple[int, ...]
    warnings: Tuple[str, ...]
    auto_added: Tuple[int, ...]
    requested: Tuple[object, ...] = ()


@dataclass(frozen=True)
class SelectionCheck:
    valid: bool
    missing_dependencies: Tuple[int, ...] = ()
    affected_layer: Optional[int] = None


class DependencyResolver:
    """Computes corrected layer selections from the registry's dependency table.

    Every layer may only depend on strictly lower ids, so ascending numeric
    order is always a valid topological order.
    """

    def __init__(self, descriptors: Optional[Mapping[int, LayerDescriptor]] = None) -> None:
        table = dict(descriptors) if descriptors is not None else dict(LAYER_DESCRIPTORS)
        check_descriptor_table(table)
        self._descriptors: Dict[int, LayerDescriptor] = table

    @property
    def valid_ids(self) -> Tuple[int, ...]:
        return tuple(sorted(self._descriptors))

    def descriptor(self, layer_id: int) -> LayerDescriptor:
        if not self.is_valid(layer_id):
            raise UnknownLayerError(layer_id, self.valid_ids)
        return self._descriptors[layer_id]

    def is_valid(self, layer_id: object) -> bool:
        # bool is an int subclass; True must not alias layer 1.
        return isinstance(layer_id, int) and not isinstance(layer_id, bool) and layer_id in self._descriptors

    def dependencies(self, layer_id: int) -> Tuple[int, ...]:
        return tuple(sorted(self.descriptor(layer_id).dependencies))

    def resolve(self, requested: Iterable[object]) -> ResolvedLayers:
        """Filter invalid ids and union in every transitive dependency."""
        requested_list = list(dict.fromkeys(requested))
        warnings: List[str] = []
        valid: List[int] = []
        for layer_id in requested_list:
            if self.is_valid(layer_id):
                valid.append(layer_id)  # type: ignore[arg-type]
            else:
                warnings.append(f"Invalid layer ID: {layer_id!r} ({self._range_label()})")

        selected = set(valid)
        added: Dict[int, int] = {}
        frontier = sorted(valid)
        while frontier:
            next_frontier: List[int] = []
            for layer_id in frontier:
                for dep in sorted(self._descriptors[layer_id].dependencies):
                    if dep in selected:
                        continue
                    selected.add(dep)
                    added[dep] = layer_id
                    next_frontier.append(dep)
            frontier = sorted(next_frontier)

        for dep in sorted(added):
            requirer = added[dep]
            warnings.append(
                f"Layer {requirer} ({self._descriptors[requirer].name}) requires "
                f"Layer {dep} ({self._descriptors[dep].name}). Auto-added."
            )

        return ResolvedLayers(
            ordered=tuple(sorted(selected)),
            warnings=tuple(warnings),
            auto_added=tuple(sorted(added)),
            requested=tuple(requested_list),
        )

    def execution_order(self, requested: Iterable[int], skip: Iterable[int] = ()) -> Tuple[int, ...]:
        """Resolve ``requested`` but never schedule an explicitly skipped layer."""
        skipped = set(skip)
        resolved = self.resolve(layer for layer in requested if layer not in skipped)
        return tuple(layer for layer in resolved.ordered if layer not in skipped)

    def validate_selection(self, layers: Iterable[int]) -> SelectionCheck:
        chosen = [layer for layer in layers if self.is_valid(layer)]
        chosen_set = set(chosen)
        for layer_id in sorted(chosen_set):
            missing = tuple(sorted(self._descriptors[layer_id].dependencies - chosen_set))
            if missing:
                return SelectionCheck(valid=False, missing_dependencies=missing, affected_layer=layer_id)
        return SelectionCheck(valid=True)

    def minimal_set_for(self, categories: Iterable[str]) -> List[int]:
        """Map issue categories to base layers and close over their dependencies."""
        base_layers = []
        for category in categories:
            layer = _CATEGORY_TO_LAYER.get(str(category).strip().lower())
            if layer is not None and layer in self._descriptors:
                base_layers.append(layer)
        return list(self.resolve(base_layers).ordered)

    @staticmethod
    def compatibility_notes(layers: Iterable[int]) -> List[str]:
        chosen = set(layers)
        notes: List[str] = []
        if 5 in chosen and 4 not in chosen:
            notes.append("Next.js optimizations (Layer 5) work best with hydration fixes (Layer 4)")
        if 6 in chosen and 3 not in chosen:
            notes.append("Testing improvements (Layer 6) complement component fixes (Layer 3)")
        return notes

    def _range_label(self) -> str:
        ids = self.valid_ids
        if not ids:
            return "no layers registered"
        return f"valid range: {ids[0]}-{ids[-1]}"


__all__ = [
    "DependencyResolver",
    "ResolvedLayers",
    "SelectionCheck",
    "UnknownLayerError",
]
