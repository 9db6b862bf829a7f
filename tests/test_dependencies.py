"""Tests for layerfix.dependencies."""

from __future__ import annotations

import pytest

from layerfix.dependencies import DependencyResolver, UnknownLayerError
from layerfix.layers.descriptors import LAYER_DESCRIPTORS, check_descriptor_table
from layerfix.models import LayerDescriptor


def test_resolve_adds_transitive_dependencies_in_ascending_order() -> None:
    resolved = DependencyResolver().resolve([4])

    assert resolved.ordered == (1, 2, 3, 4)
    assert resolved.auto_added == (1, 2, 3)
    assert len(resolved.warnings) == 3
    assert "Layer 4 (Hydration) requires Layer 3 (Components). Auto-added." in resolved.warnings


@pytest.mark.parametrize("layer_id", sorted(LAYER_DESCRIPTORS))
def test_resolve_closure_holds_for_every_layer(layer_id: int) -> None:
    resolved = DependencyResolver().resolve([layer_id])

    assert resolved.ordered == tuple(range(1, layer_id + 1))
    assert len(set(resolved.ordered)) == len(resolved.ordered)


def test_resolve_is_idempotent_on_a_closed_set() -> None:
    resolver = DependencyResolver()
    first = resolver.resolve([3, 1])
    second = resolver.resolve(first.ordered)

    assert second.ordered == first.ordered
    assert second.warnings == ()
    assert second.auto_added == ()


def test_resolve_filters_invalid_ids_with_warnings() -> None:
    resolved = DependencyResolver().resolve([2, 99, "x", True])

    assert resolved.ordered == (1, 2)
    invalid = [warning for warning in resolved.warnings if warning.startswith("Invalid layer ID")]
    assert len(invalid) == 3
    assert "valid range: 1-6" in invalid[0]


def test_resolve_of_empty_request_is_empty() -> None:
    resolved = DependencyResolver().resolve([])

    assert resolved.ordered == ()
    assert resolved.warnings == ()


def test_execution_order_never_schedules_skipped_layers() -> None:
    order = DependencyResolver().execution_order([3, 5], skip=[2])

    assert 2 not in order
    assert order == (1, 3, 4, 5)


def test_validate_selection_reports_first_missing_dependency() -> None:
    resolver = DependencyResolver()

    assert resolver.validate_selection([1, 2, 3]).valid is True
    check = resolver.validate_selection([1, 3])
    assert check.valid is False
    assert check.affected_layer == 3
    assert check.missing_dependencies == (2,)


def test_minimal_set_for_maps_categories_and_ignores_unknown() -> None:
    resolver = DependencyResolver()

    assert resolver.minimal_set_for(["hydration"]) == [1, 2, 3, 4]
    assert resolver.minimal_set_for(["Config", "entities"]) == [1, 2]
    assert resolver.minimal_set_for(["unknown"]) == []


def test_compatibility_notes() -> None:
    notes = DependencyResolver.compatibility_notes([1, 2, 5, 6])

    assert any("Layer 5" in note for note in notes)
    assert any("Layer 6" in note for note in notes)
    assert DependencyResolver.compatibility_notes([1, 2, 3, 4, 5, 6]) == []


def test_descriptor_lookup_is_strict() -> None:
    resolver = DependencyResolver()

    assert resolver.descriptor(2).name == "Entity Cleanup"
    with pytest.raises(UnknownLayerError) as excinfo:
        resolver.descriptor(7)
    assert excinfo.value.layer_id == 7


def test_descriptor_table_rejects_forward_dependencies() -> None:
    table = {
        1: LayerDescriptor(id=1, name="One", description="", dependencies=frozenset({2})),
        2: LayerDescriptor(id=2, name="Two", description=""),
    }

    with pytest.raises(ValueError, match="invalid dependencies"):
        check_descriptor_table(table)
