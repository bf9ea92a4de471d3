from typing import Any, Dict, Set

from src.document_model import flatten, values_equal


def detect_changed_keys(baseline: Dict[str, Any], working: Dict[str, Any]) -> Set[str]:
    """
    Find the reference-language keys whose source text changed.

    A key is changed when it exists on only one side (added or removed) or when
    its value differs structurally between the baseline and the working copy.

    Args:
        baseline: The last trusted reference document.
        working: The reference document in the working copy.

    Returns:
        Set[str]: The changed leaf keys.
    """
    baseline_flat = flatten(baseline)
    working_flat = flatten(working)

    changed = set(baseline_flat.keys() ^ working_flat.keys())
    for key in baseline_flat.keys() & working_flat.keys():
        if not values_equal(baseline_flat[key], working_flat[key]):
            changed.add(key)
    return changed
