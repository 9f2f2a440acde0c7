"""
Identifier allocator - Pick the next unused short node id.
"""

import time
from string import ascii_uppercase
from typing import Iterable


def next_id(existing_ids: Iterable[str]) -> str:
    """
    Return the first free id from A..Z, then A1..A99, B1..B99, ...

    A single letter is skipped when any existing id starts with it
    (case-insensitively), so "A" is not offered next to "a2" or "Alpha".
    Deterministic for a given input; no state is kept between calls.
    """
    used = set(existing_ids)
    used_initials = {node_id[0].upper() for node_id in used if node_id}

    for letter in ascii_uppercase:
        if letter not in used and letter not in used_initials:
            return letter

    for letter in ascii_uppercase:
        for number in range(1, 100):
            candidate = f"{letter}{number}"
            if candidate not in used:
                return candidate

    # 2574 ids in use; practically unreachable
    return f"N{int(time.time() * 1000)}"
