"""Layer plugins, the static layer table and registry discovery."""

from __future__ import annotations

from importlib import metadata
from types import MappingProxyType
from typing import Callable, Dict, Iterable, Mapping, Optional, Sequence, Set, Tuple

from ..models import LayerDescriptor
from .base import LayerOutput, LayerPlugin, LayerTimeoutError, PluginError, ScriptLayer, TransformOptions
from .components import ComponentsLayer
from .configuration import ConfigurationLayer
from .descriptors import LAYER_DESCRIPTORS, UnknownLayerError, check_descriptor_table
from .entities import EntityCleanupLayer
from .hydration import HydrationLayer
from .nextjs import NextJsLayer
from .testing import TestingLayer

_ENTRY_POINT_GROUP = "layerfix.layers"

_BUILTIN_FACTORIES: Dict[int, Callable[[], LayerPlugin]] = {
    1: ConfigurationLayer,
    2: EntityCleanupLayer,
    3: ComponentsLayer,
    4: HydrationLayer,
    5: NextJsLayer,
    6: TestingLayer,
}


class LayerRegistry:
    """Maps layer ids to their static descriptor and plugin instance."""

    def __init__(
        self,
        plugins: Mapping[int, LayerPlugin],
        descriptors: Optional[Mapping[int, LayerDescriptor]] = None,
    ) -> None:
        table = dict(descriptors) if descriptors is not None else dict(LAYER_DESCRIPTORS)
        check_descriptor_table(table)
        unknown = sorted(set(plugins) - set(table))
        if unknown:
            raise ValueError(f"Plugins registered for unknown layers: {', '.join(map(str, unknown))}")
        self._descriptors = MappingProxyType(table)
        self._plugins: Dict[int, LayerPlugin] = dict(plugins)

    @property
    def descriptors(self) -> Mapping[int, LayerDescriptor]:
        return self._descriptors

    @property
    def layer_ids(self) -> Tuple[int, ...]:
        return tuple(sorted(self._plugins))

    def descriptor(self, layer_id: int) -> LayerDescriptor:
        try:
            return self._descriptors[layer_id]
        except KeyError:
            raise UnknownLayerError(layer_id, tuple(sorted(self._descriptors))) from None

    def plugin(self, layer_id: int) -> LayerPlugin:
        self.descriptor(layer_id)
        try:
            return self._plugins[layer_id]
        except KeyError:
            raise PluginError(f"No plugin registered for layer {layer_id}", layer_id=layer_id) from None

    def override(self, plugin: LayerPlugin, layer_id: Optional[int] = None) -> None:
        """Replace the plugin serving ``layer_id`` (defaults to ``plugin.layer_id``)."""
        target = plugin.layer_id if layer_id is None else layer_id
        self.descriptor(target)
        if not (plugin.has_ast or plugin.has_regex):
            raise TypeError(f"Plugin {type(plugin).__name__} implements no transform strategy")
        self._plugins[target] = plugin

    def with_overrides(self, plugins: Iterable[LayerPlugin]) -> "LayerRegistry":
        """Return a copy of this registry with ``plugins`` serving their layers."""
        registry = LayerRegistry(self._plugins, self._descriptors)
        for plugin in plugins:
            registry.override(plugin)
        return registry


def discover_layers(enabled: Sequence[int] | None = None) -> LayerRegistry:
    """Build a registry from the built-in plugins plus ``layerfix.layers`` entry points.

    Entry points are named after the layer id they serve and replace the
    built-in plugin for that id.
    """

    plugins: Dict[int, LayerPlugin] = {}
    enabled_set: Set[int] | None = set(enabled) if enabled is not None else None

    def _add(layer_id: int, factory: Callable[[], LayerPlugin]) -> None:
        if enabled_set is not None and layer_id not in enabled_set:
            return
        instance = factory()
        if not isinstance(instance, LayerPlugin):
            raise TypeError(f"Layer factory for '{layer_id}' did not return a LayerPlugin instance")
        plugins[layer_id] = instance

    for layer_id, factory in _BUILTIN_FACTORIES.items():
        _add(layer_id, factory)

    for entry in _iter_entry_points():
        try:
            layer_id = int(entry.name)
        except ValueError as exc:
            raise ValueError(f"Layer entry point '{entry.name}' must be named after a layer id") from exc
        if layer_id not in LAYER_DESCRIPTORS:
            raise UnknownLayerError(layer_id, tuple(sorted(LAYER_DESCRIPTORS)))
        try:
            loaded = entry.load()
        except Exception as exc:  # pragma: no cover - third-party import failure
            raise RuntimeError(f"Failed to load layer entry point '{entry.name}': {exc}") from exc

        def _factory(obj: object = loaded) -> LayerPlugin:
            return _coerce_plugin(obj)

        _add(layer_id, _factory)

    return LayerRegistry(plugins)


def _coerce_plugin(obj: object) -> LayerPlugin:
    if isinstance(obj, LayerPlugin):
        return obj
    if isinstance(obj, type) and issubclass(obj, LayerPlugin):
        return obj()
    if callable(obj):
        instance = obj()
        if isinstance(instance, LayerPlugin):
            return instance
    raise TypeError("Layer entry point must be a LayerPlugin subclass or factory")


def _iter_entry_points() -> Iterable[metadata.EntryPoint]:
    return metadata.entry_points().select(group=_ENTRY_POINT_GROUP)


__all__ = [
    "LAYER_DESCRIPTORS",
    "ComponentsLayer",
    "ConfigurationLayer",
    "EntityCleanupLayer",
    "HydrationLayer",
    "LayerOutput",
    "LayerPlugin",
    "LayerRegistry",
    "LayerTimeoutError",
    "NextJsLayer",
    "PluginError",
    "ScriptLayer",
    "TestingLayer",
    "TransformOptions",
    "UnknownLayerError",
    "discover_layers",
]
