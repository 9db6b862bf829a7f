"""Static registry table describing the built-in layers."""

from __future__ import annotations

from types import MappingProxyType
from typing import Mapping, Sequence

from ..models import LayerDescriptor


class UnknownLayerError(ValueError):
    """Raised by strict lookups for a layer id outside the registry."""

    def __init__(self, layer_id: object, valid: Sequence[int] = ()) -> None:
        detail = f" (valid range: {min(valid)}-{max(valid)})" if valid else ""
        super().__init__(f"Unknown layer id: {layer_id!r}{detail}")
        self.layer_id = layer_id


LAYER_DESCRIPTORS: Mapping[int, LayerDescriptor] = MappingProxyType(
    {
        1: LayerDescriptor(
            id=1,
            name="Configuration",
            description="TypeScript, Next.js and package.json config modernisation",
            dependencies=frozenset(),
            supports_ast=False,
            critical=True,
        ),
        2: LayerDescriptor(
            id=2,
            name="Entity Cleanup",
            description="HTML entity unescaping and legacy pattern fixes",
            dependencies=frozenset({1}),
            supports_ast=True,
        ),
        3: LayerDescriptor(
            id=3,
            name="Components",
            description="React keys, hook imports and accessibility attributes",
            dependencies=frozenset({1, 2}),
            supports_ast=True,
        ),
        4: LayerDescriptor(
            id=4,
            name="Hydration",
            description="SSR guards around browser-only APIs",
            dependencies=frozenset({1, 2, 3}),
            supports_ast=True,
            critical=True,
        ),
        5: LayerDescriptor(
            id=5,
            name="Next.js",
            description="App router conventions, client directives and import repair",
            dependencies=frozenset({1, 2, 3, 4}),
            supports_ast=True,
        ),
        6: LayerDescriptor(
            id=6,
            name="Testing",
            description="Test scaffolding and duplicate declaration cleanup",
            dependencies=frozenset({1, 2, 3, 4, 5}),
            supports_ast=False,
        ),
    }
)


def check_descriptor_table(descriptors: Mapping[int, LayerDescriptor]) -> None:
    """Raise ValueError unless every layer depends only on lower-numbered layers."""
    for layer_id, descriptor in descriptors.items():
        if descriptor.id != layer_id:
            raise ValueError(f"Descriptor for layer {layer_id} declares id {descriptor.id}")
        invalid = sorted(dep for dep in descriptor.dependencies if dep >= layer_id or dep not in descriptors)
        if invalid:
            raise ValueError(
                f"Layer {layer_id} ({descriptor.name}) has invalid dependencies: "
                + ", ".join(str(dep) for dep in invalid)
            )


__all__ = ["LAYER_DESCRIPTORS", "UnknownLayerError", "check_descriptor_table"]
