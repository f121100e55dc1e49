"""
Tests for the layers module.
"""

import math

import numpy as np
import pytest

from kitbash.core.data_types import ImageData
from kitbash.core.errors import InvalidLayerError, InvalidTransformError, LayerNotFoundError
from kitbash.core.layers import Layer, LayerStore, LayerView, name_from_filename


@pytest.fixture
def store(make_image):
    store = LayerStore()
    for name in ("a.png", "b.png", "c.png", "d.png"):
        store.add(make_image(4, 4), name)
    return store


def ids_by_name(store):
    return {l.name: l.id for l in store.layers}


def z_by_name(store):
    return {l.name: l.z_index for l in store.layers}


class TestLayer:
    """Tests for Layer dataclass."""

    def test_create_defaults(self, make_image):
        layer = Layer.create(make_image(3, 2), "head")
        assert isinstance(layer.id, str)
        assert layer.position == (0, 0)
        assert layer.scale == 1.0
        assert layer.visible is True
        assert layer.size == (3, 2)

    def test_view_is_frozen_copy(self, make_image):
        layer = Layer.create(make_image(2, 2), "head")
        view = layer.view()
        assert isinstance(view, LayerView)
        assert view.pixels.pixels is not layer.pixels.pixels
        with pytest.raises(AttributeError):
            view.x = 5


class TestNameFromFilename:
    """Tests for display names."""

    @pytest.mark.parametrize("filename, expected", [
        ("head.png", "head"),
        ("sprites/Body.PNG", "Body"),
        ("sword v1.5", "sword v1.5"),
        ("cape.webp", "cape"),
        ("notes.txt", "notes.txt"),
    ])
    def test_names(self, filename, expected):
        assert name_from_filename(filename) == expected


class TestLayerStoreAdd:
    """Tests for adding layers."""

    def test_add_defaults(self, make_image):
        store = LayerStore()
        layer_id = store.add(make_image(8, 8), "head.png")
        layer = store.get(layer_id)
        assert layer.name == "head"
        assert layer.position == (0, 0)
        assert layer.scale == 1.0
        assert layer.z_index == 0
        assert layer.visible is True

    def test_add_increments_z(self, store):
        assert [l.z_index for l in store.layers] == [0, 1, 2, 3]
        assert [l.name for l in store.layers] == ["a", "b", "c", "d"]

    def test_ids_unique(self, store):
        assert len({l.id for l in store}) == 4

    def test_add_zero_area_raises(self):
        store = LayerStore()
        with pytest.raises(InvalidLayerError, match="zero area"):
            store.add(ImageData.empty(0, 5), "empty.png")
        assert len(store) == 0

    def test_add_rejects_non_image(self):
        store = LayerStore()
        with pytest.raises(InvalidLayerError):
            store.add(np.zeros((2, 2, 4), dtype=np.uint8), "raw")

    def test_add_copies_pixels(self, make_image):
        store = LayerStore()
        image = make_image(2, 2, (10, 20, 30, 255))
        layer_id = store.add(image, "x")
        image.pixels[...] = 0
        assert tuple(store.get(layer_id).pixels.pixels[0, 0]) == (10, 20, 30, 255)

    def test_add_duplicate_id_raises(self, make_image):
        store = LayerStore()
        store.add(make_image(1, 1), "a", layer_id="fixed")
        with pytest.raises(InvalidLayerError, match="already exists"):
            store.add(make_image(1, 1), "b", layer_id="fixed")


class TestLayerStoreRemove:
    """Tests for removing layers."""

    def test_remove(self, store):
        b = ids_by_name(store)["b"]
        removed = store.remove(b)
        assert removed is not None and removed.name == "b"
        assert b not in store
        assert z_by_name(store) == {"a": 0, "c": 1, "d": 2}

    def test_remove_missing_returns_none(self, store):
        assert store.remove("nope") is None
        assert len(store) == 4

    def test_remove_clears_selection(self, store):
        a = ids_by_name(store)["a"]
        store.selected_id = a
        store.remove(a)
        assert store.selected_id is None

    def test_add_after_remove_goes_on_top(self, store, make_image):
        store.remove(ids_by_name(store)["b"])
        new_id = store.add(make_image(1, 1), "e.png")
        assert store.get(new_id).z_index == 3


class TestLayerStoreReorder:
    """Tests for z ordering."""

    def test_adjacent_reorder_swaps_two(self, store):
        before = z_by_name(store)
        store.reorder(ids_by_name(store)["b"], 2)
        after = z_by_name(store)
        assert after["b"] == before["c"]
        assert after["c"] == before["b"]
        assert after["a"] == before["a"]
        assert after["d"] == before["d"]

    def test_reorder_to_back(self, store):
        store.reorder(ids_by_name(store)["d"], 0)
        assert [l.name for l in store.layers] == ["d", "a", "b", "c"]
        assert [l.z_index for l in store.layers] == [0, 1, 2, 3]

    def test_reorder_clamps(self, store):
        store.reorder(ids_by_name(store)["a"], 99)
        assert [l.name for l in store.layers] == ["b", "c", "d", "a"]
        store.reorder(ids_by_name(store)["a"], -5)
        assert [l.name for l in store.layers] == ["a", "b", "c", "d"]

    def test_reorder_unknown_raises(self, store):
        with pytest.raises(LayerNotFoundError):
            store.reorder("nope", 0)

    def test_raise_and_lower(self, store):
        ids = ids_by_name(store)
        store.raise_layer(ids["a"])
        assert [l.name for l in store.layers] == ["b", "a", "c", "d"]
        store.lower_layer(ids["d"])
        assert [l.name for l in store.layers] == ["b", "a", "d", "c"]

    def test_raise_top_is_noop(self, store):
        store.raise_layer(ids_by_name(store)["d"])
        assert [l.name for l in store.layers] == ["a", "b", "c", "d"]

    def test_ties_broken_by_insertion(self, store):
        ids = ids_by_name(store)
        store.restore(ids["c"], position=(0, 0), scale=1.0, z_index=0, visible=True)
        store.restore(ids["a"], position=(0, 0), scale=1.0, z_index=0, visible=True)
        assert [l.name for l in store.layers][:2] == ["a", "c"]
        store.normalize_order()
        assert [l.z_index for l in store.layers] == [0, 1, 2, 3]


class TestLayerStoreTransform:
    """Tests for transforms and visibility."""

    def test_set_transform_snaps(self, store):
        a = ids_by_name(store)["a"]
        layer = store.set_transform(a, position=(10.6, -3.5), scale=2.5)
        assert layer.position == (11, -4)
        assert layer.scale == 2.5

    def test_position_only(self, store):
        a = ids_by_name(store)["a"]
        store.set_transform(a, scale=3.0)
        store.set_transform(a, position=(1, 2))
        assert store.get(a).scale == 3.0
        assert store.get(a).position == (1, 2)

    @pytest.mark.parametrize("scale", [0, -1.0, math.nan, math.inf])
    def test_invalid_scale_keeps_prior_state(self, store, scale):
        a = ids_by_name(store)["a"]
        store.set_transform(a, position=(5, 5), scale=2.0)
        with pytest.raises(InvalidTransformError):
            store.set_transform(a, position=(9, 9), scale=scale)
        assert store.get(a).position == (5, 5)
        assert store.get(a).scale == 2.0

    @pytest.mark.parametrize("position", [(math.nan, 0), (0, math.inf), ("x", 1), (1,)])
    def test_invalid_position_keeps_prior_state(self, store, position):
        a = ids_by_name(store)["a"]
        with pytest.raises(InvalidTransformError):
            store.set_transform(a, position=position, scale=4.0)
        assert store.get(a).position == (0, 0)
        assert store.get(a).scale == 1.0

    def test_unknown_layer_raises(self, store):
        with pytest.raises(LayerNotFoundError):
            store.set_transform("nope", position=(1, 1))

    def test_translate(self, store):
        a = ids_by_name(store)["a"]
        store.set_transform(a, position=(3, 3))
        store.translate(a, 0.4, 0.6)
        assert store.get(a).position == (3, 4)

    def test_reset_transform(self, store):
        a = ids_by_name(store)["a"]
        store.set_transform(a, position=(7, 8), scale=3.0)
        store.reset_transform(a)
        assert store.get(a).position == (0, 0)
        assert store.get(a).scale == 1.0

    def test_large_scale_allowed(self, store):
        a = ids_by_name(store)["a"]
        store.set_transform(a, scale=250.0)
        assert store.get(a).scale == 250.0

    def test_visibility(self, store):
        b = ids_by_name(store)["b"]
        store.set_visibility(b, False)
        assert store.get(b).visible is False
        assert "b" not in [l.name for l in store.visible_layers]
        assert b in store

    def test_rename(self, store):
        a = ids_by_name(store)["a"]
        store.rename(a, "Helmet")
        assert store.get(a).name == "Helmet"
        assert store.find_by_name("Helmet").id == a


class TestLayerStoreSnapshot:
    """Tests for read-only snapshots."""

    def test_snapshot_order(self, store):
        store.reorder(ids_by_name(store)["c"], 0)
        assert [v.name for v in store.snapshot()] == ["c", "a", "b", "d"]

    def test_snapshot_isolated_from_edits(self, store):
        a = ids_by_name(store)["a"]
        views = store.snapshot()
        original = views[0].pixels.pixels.copy()

        store.set_transform(a, position=(30, 30), scale=5.0)
        store.get(a).pixels.pixels[...] = 0
        store.remove(ids_by_name(store)["b"])

        assert views[0].position == (0, 0)
        assert views[0].scale == 1.0
        assert np.array_equal(views[0].pixels.pixels, original)
        assert len(views) == 4


class TestLayerStoreSelection:
    """Tests for selection state."""

    def test_select(self, store):
        a = ids_by_name(store)["a"]
        store.selected_id = a
        assert store.selected_layer.name == "a"

    def test_select_invalid_raises(self, store):
        with pytest.raises(LayerNotFoundError):
            store.selected_id = "nope"

    def test_clear(self, store):
        store.selected_id = ids_by_name(store)["a"]
        store.clear()
        assert len(store) == 0
        assert store.selected_id is None
