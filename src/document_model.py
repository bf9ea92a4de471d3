import copy
import json
from typing import Any, Dict, Optional

import jsonschema

# A localized document is a JSON object whose values are either leaves
# (strings, numbers, booleans, null, arrays) or further objects of the same shape.
# Arrays are opaque leaves and are never descended into.
DOCUMENT_SCHEMA = {
    "type": "object",
    "additionalProperties": {"$ref": "#/$defs/node"},
    "$defs": {
        "node": {
            "anyOf": [
                {"type": ["string", "number", "boolean", "null", "array"]},
                {
                    "type": "object",
                    "additionalProperties": {"$ref": "#/$defs/node"}
                }
            ]
        }
    }
}

KEY_SEPARATOR = "."


class MalformedDocument(ValueError):
    """Raised when text cannot be parsed as a localized document tree."""

    def __init__(self, source: str, reason: str):
        super().__init__(f"Malformed document '{source}': {reason}")
        self.source = source
        self.reason = reason


def parse_document(text: str, source: str = "<memory>") -> Dict[str, Any]:
    """
    Parse and validate the JSON text of a localized document.

    Args:
        text: The raw JSON text.
        source: A label for error messages (file path or revision:path).

    Returns:
        The document as an ordered dictionary tree.

    Raises:
        MalformedDocument: If the text is not JSON or is not an object tree.
    """
    try:
        document = json.loads(text)
    except json.JSONDecodeError as json_exc:
        raise MalformedDocument(source, f"invalid JSON ({json_exc})") from json_exc
    except RecursionError as depth_exc:
        raise MalformedDocument(source, "nested too deeply") from depth_exc

    try:
        jsonschema.validate(instance=document, schema=DOCUMENT_SCHEMA)
    except jsonschema.ValidationError as schema_exc:
        raise MalformedDocument(source, f"schema violation ({schema_exc.message})") from schema_exc
    except RecursionError as depth_exc:
        raise MalformedDocument(source, "nested too deeply") from depth_exc

    return document


def serialize_document(document: Dict[str, Any], indent: int = 4) -> str:
    """Render a document the way locale files are stored: indented, UTF-8, trailing newline."""
    return json.dumps(document, indent=indent, ensure_ascii=False) + "\n"


def is_interior(value: Any) -> bool:
    return isinstance(value, dict)


def flatten(document: Dict[str, Any], prefix: str = "") -> Dict[str, Any]:
    """
    Flatten a nested document into a map of dot-joined leaf keys to values.

    Empty interior nodes contribute no leaves.
    """
    result: Dict[str, Any] = {}
    for key, value in document.items():
        full_key = f"{prefix}{KEY_SEPARATOR}{key}" if prefix else key
        if is_interior(value):
            result.update(flatten(value, full_key))
        else:
            result[full_key] = value
    return result


def set_nested_value(document: Dict[str, Any], key_path: str, value: Any) -> None:
    """
    Set a leaf value in place, creating missing intermediate nodes.

    An intermediate segment that currently holds a leaf is replaced by an
    empty interior node.
    """
    segments = key_path.split(KEY_SEPARATOR)
    current = document
    for segment in segments[:-1]:
        if not is_interior(current.get(segment)):
            current[segment] = {}
        current = current[segment]
    current[segments[-1]] = value


def unflatten(flat: Dict[str, Any], into: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    Rebuild a nested document from a flattened map.

    When `into` is given the entries are deep-merged into a copy of it; keys
    not named in `flat` keep their values and their position.
    """
    result = copy.deepcopy(into) if into is not None else {}
    for key_path, value in flat.items():
        set_nested_value(result, key_path, copy.deepcopy(value))
    return result


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def values_equal(left: Any, right: Any) -> bool:
    """
    Deep structural equality of two document values.

    Numbers compare by value (``1`` equals ``1.0``), but booleans are never
    equal to numbers. Object key order is not significant.
    """
    if _is_number(left) and _is_number(right):
        return left == right
    if type(left) is not type(right):
        return False
    if isinstance(left, dict):
        if left.keys() != right.keys():
            return False
        return all(values_equal(left[key], right[key]) for key in left)
    if isinstance(left, list):
        if len(left) != len(right):
            return False
        return all(values_equal(a, b) for a, b in zip(left, right))
    return left == right
