import pytest

from i18n_pipeline.flatten import classify_prefixes, flatten_object, unflatten_object
from i18n_pipeline.types import ShapeHint


class TestFlatten:

    def test_flatten_nested_object(self):
        doc = {
            "user": {"name": "John", "address": {"street": "Main St", "city": "Boston"}},
            "settings": {"theme": "dark"},
        }
        assert flatten_object(doc) == {
            "user.name": "John",
            "user.address.street": "Main St",
            "user.address.city": "Boston",
            "settings.theme": "dark",
        }

    def test_flatten_keeps_document_order(self):
        doc = {"b": 1, "a": {"z": 1, "y": 2}, "c": [3, 4]}
        assert list(flatten_object(doc)) == ["b", "a.z", "a.y", "c.0", "c.1"]

    def test_flatten_arrays_and_scalars(self):
        doc = {"items": ["a", "b"], "nested": {"array": [1, 2.5, True, None]}}
        assert flatten_object(doc) == {
            "items.0": "a",
            "items.1": "b",
            "nested.array.0": "1",
            "nested.array.1": "2.5",
            "nested.array.2": "true",
            "nested.array.3": "null",
        }

    def test_empty_containers_yield_no_keys(self):
        assert flatten_object({}) == {}
        assert flatten_object({"a": {}, "b": [], "c": "x"}) == {"c": "x"}

    def test_deep_nesting_does_not_hit_recursion_limit(self):
        doc = leaf = {}
        for _ in range(3000):
            leaf["n"] = {}
            leaf = leaf["n"]
        leaf["v"] = "deep"
        flat = flatten_object(doc)
        assert len(flat) == 1
        assert next(iter(flat.values())) == "deep"


class TestUnflatten:

    def test_unflatten_nested_object(self):
        flat = {"user.name": "John", "user.address.city": "Boston", "settings.theme": "dark"}
        assert unflatten_object(flat) == {
            "user": {"name": "John", "address": {"city": "Boston"}},
            "settings": {"theme": "dark"},
        }

    def test_pure_array(self):
        flat = {"other.0": "x", "other.1": "y", "other.2": "z"}
        assert unflatten_object(flat) == {"other": ["x", "y", "z"]}

    def test_mixed_siblings_degrade_to_object(self):
        flat = {"mixed.first": "a", "mixed.2": "b", "mixed.third": "c"}
        result = unflatten_object(flat)
        assert result == {"mixed": {"first": "a", "2": "b", "third": "c"}}
        assert isinstance(result["mixed"], dict)

    def test_non_numeric_sibling_seen_last_still_disqualifies_array(self):
        flat = {"m.0": "a", "m.1": "b", "m.label": "c"}
        assert unflatten_object(flat) == {"m": {"0": "a", "1": "b", "label": "c"}}

    def test_non_contiguous_indices_become_object(self):
        assert unflatten_object({"a.0": "x", "a.2": "y"}) == {"a": {"0": "x", "2": "y"}}
        assert unflatten_object({"a.01": "x"}) == {"a": {"01": "x"}}

    def test_out_of_order_indices_still_array(self):
        assert unflatten_object({"a.1": "second", "a.0": "first"}) == {"a": ["first", "second"]}

    def test_array_of_objects(self):
        flat = {"list.0.name": "a", "list.1.name": "b"}
        assert unflatten_object(flat) == {"list": [{"name": "a"}, {"name": "b"}]}

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("1", 1),
            ("-3", -3),
            ("2.5", 2.5),
            ("true", True),
            ("false", False),
            ("null", None),
            ("01", "01"),
            ("1.50", "1.50"),
            ("1e5", "1e5"),
            ("-0", "-0"),
            ("NaN", "NaN"),
            ("hello", "hello"),
        ],
    )
    def test_leaf_coercion(self, raw, expected):
        assert unflatten_object({"k": raw}) == {"k": expected}

    def test_leaf_colliding_with_container_does_not_crash(self):
        result = unflatten_object({"a": "scalar", "a.b": "child"})
        assert result == {"a": {"b": "child"}}

    def test_empty_mapping(self):
        assert unflatten_object({}) == {}

    def test_round_trip(self):
        doc = {
            "title": "Hello",
            "count": 3,
            "ratio": 0.25,
            "enabled": False,
            "missing": None,
            "menu": {"items": [{"label": "Open", "shortcut": "Ctrl+O"}, {"label": "Quit"}]},
            "matrix": [[1, 2], [3]],
        }
        assert unflatten_object(flatten_object(doc)) == doc


def test_classify_prefixes():
    hints = classify_prefixes(["a.0", "a.1", "b.x", "c.0.d", "m.0", "m.y"])
    assert hints[()] is ShapeHint.OBJECT
    assert hints[("a",)] is ShapeHint.ARRAY
    assert hints[("b",)] is ShapeHint.OBJECT
    assert hints[("c",)] is ShapeHint.ARRAY
    assert hints[("c", "0")] is ShapeHint.OBJECT
    assert hints[("m",)] is ShapeHint.OBJECT
