import unittest

from src.document_model import (
    MalformedDocument,
    flatten,
    parse_document,
    serialize_document,
    set_nested_value,
    unflatten,
    values_equal
)


class TestFlatten(unittest.TestCase):

    def test_flatten_joins_nested_keys_with_dots(self):
        document = {"menu": {"settings": {"title": "Settings"}, "quit": "Quit"}, "hello": "Hello"}
        self.assertEqual(
            flatten(document),
            {"menu.settings.title": "Settings", "menu.quit": "Quit", "hello": "Hello"}
        )

    def test_arrays_are_opaque_leaves(self):
        document = {"tips": ["one", {"two": "2"}], "nested": {"list": []}}
        flat = flatten(document)
        self.assertEqual(flat, {"tips": ["one", {"two": "2"}], "nested.list": []})

    def test_non_string_scalars_are_leaves(self):
        flat = flatten({"count": 3, "enabled": False, "missing": None})
        self.assertEqual(flat, {"count": 3, "enabled": False, "missing": None})

    def test_round_trip(self):
        document = {
            "a": {"b": "x", "c": {"d": "y"}},
            "e": ["keep", "as", "is"],
            "f": "z"
        }
        self.assertEqual(unflatten(flatten(document)), document)

    def test_round_trip_preserves_key_order(self):
        document = {"z": "1", "a": {"y": "2", "b": "3"}}
        rebuilt = unflatten(flatten(document))
        self.assertEqual(list(rebuilt.keys()), ["z", "a"])
        self.assertEqual(list(rebuilt["a"].keys()), ["y", "b"])


class TestUnflatten(unittest.TestCase):

    def test_partial_unflatten_deep_merges(self):
        existing = {"a": {"c": "y"}}
        merged = unflatten({"a.b": "x"}, into=existing)
        self.assertEqual(merged, {"a": {"c": "y", "b": "x"}})

    def test_partial_unflatten_does_not_mutate_input(self):
        existing = {"a": {"c": "y"}}
        unflatten({"a.c": "changed"}, into=existing)
        self.assertEqual(existing, {"a": {"c": "y"}})

    def test_missing_intermediate_nodes_are_created(self):
        merged = unflatten({"x.y.z": "deep"}, into={"keep": "me"})
        self.assertEqual(merged, {"keep": "me", "x": {"y": {"z": "deep"}}})

    def test_set_nested_value_replaces_leaf_on_path(self):
        document = {"a": "leaf"}
        set_nested_value(document, "a.b", "x")
        self.assertEqual(document, {"a": {"b": "x"}})

    def test_set_nested_value_keeps_position_of_existing_key(self):
        document = {"first": "1", "second": "2", "third": "3"}
        set_nested_value(document, "second", "two")
        self.assertEqual(list(document.items()), [("first", "1"), ("second", "two"), ("third", "3")])


class TestValuesEqual(unittest.TestCase):

    def test_structural_equality(self):
        self.assertTrue(values_equal({"a": [1, {"b": "c"}]}, {"a": [1, {"b": "c"}]}))
        self.assertFalse(values_equal(["a", "b"], ["b", "a"]))

    def test_object_key_order_is_not_significant(self):
        self.assertTrue(values_equal({"a": "1", "b": "2"}, {"b": "2", "a": "1"}))

    def test_numbers_compare_by_value_but_not_against_booleans(self):
        self.assertTrue(values_equal(1, 1.0))
        self.assertTrue(values_equal({"n": [2]}, {"n": [2.0]}))
        self.assertFalse(values_equal(1, True))
        self.assertFalse(values_equal(0, False))
        self.assertFalse(values_equal("1", 1))
        self.assertFalse(values_equal(None, ""))


class TestParseDocument(unittest.TestCase):

    def test_parse_valid_document(self):
        self.assertEqual(parse_document('{"a": {"b": "x"}, "c": [1, 2]}'), {"a": {"b": "x"}, "c": [1, 2]})

    def test_invalid_json_is_malformed(self):
        with self.assertRaises(MalformedDocument) as ctx:
            parse_document('{"a": ', source="fr.json")
        self.assertIn("fr.json", str(ctx.exception))

    def test_top_level_must_be_an_object(self):
        with self.assertRaises(MalformedDocument):
            parse_document('["a", "b"]')
        with self.assertRaises(MalformedDocument):
            parse_document('"just text"')

    def test_deeply_nested_document_is_malformed(self):
        text = "{\"a\": " * 5000 + "\"x\"" + "}" * 5000
        with self.assertRaises(MalformedDocument) as ctx:
            parse_document(text, source="deep.json")
        self.assertIn("nested too deeply", str(ctx.exception))

    def test_serialize_uses_indent_and_trailing_newline(self):
        text = serialize_document({"a": {"b": "Grüße"}})
        self.assertEqual(text, '{\n    "a": {\n        "b": "Grüße"\n    }\n}\n')


if __name__ == '__main__':
    unittest.main()
