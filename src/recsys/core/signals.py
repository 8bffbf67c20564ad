from __future__ import annotations

from typing import Dict, Mapping

NUM_USERS = "NUM_USERS"


def add_signal_counts(target: Dict[str, int], counts: Mapping[str, int]) -> Dict[str, int]:
    """Key-wise add `counts` into `target` in place and return `target`."""
    for key, value in counts.items():
        target[key] = target.get(key, 0) + value
    return target


def merge_signal_counts(u_counts: Mapping[str, int], v_counts: Mapping[str, int]) -> Dict[str, int]:
    """
    Combine the signal counts of two items seen by the same user.

    Keys present in either map are summed, then NUM_USERS is set to 1
    so the pair counts once for this user regardless of its signal types.
    Neither input is modified.
    """
    combined = add_signal_counts(dict(v_counts), u_counts)
    combined[NUM_USERS] = 1
    return combined
