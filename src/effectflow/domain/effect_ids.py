"""
Deterministic effect identifiers and call-site fingerprints.

Implements:
- EffectScope: program-order id assignment within a run or a parallel member
- follows: program-order comparison of two recorded ids
- canonical_json / fingerprint: content-addressed comparison of call inputs

Effect ids are dotted paths. Root effects are zero-padded counters
(``0001``, ``0002``); members of group ``0003`` are ``0003.0``, ``0003.1``;
effects issued inside member ``0003.1`` are ``0003.1.0001``. Effect segments
are always padded and member segments never are, so ids cannot collide.
"""

from __future__ import annotations

import hashlib
import itertools
import json
from typing import Any

ID_WIDTH = 4


class EffectScope:
    """
    Assigns effect ids in program order.

    A scope belongs to one run and one sequential thread of process code: the
    root of a replay, or one member of a parallel group.
    """

    def __init__(self, run_id: str, prefix: str = ""):
        """
        Args:
            run_id: Run the scope belongs to
            prefix: Id of the enclosing parallel member ("" for the root)
        """
        self.run_id = run_id
        self.prefix = prefix
        self._counter = itertools.count(1)

    def next_id(self) -> str:
        """Return the id for the next call site in this scope."""
        seq = f"{next(self._counter):0{ID_WIDTH}d}"
        return f"{self.prefix}.{seq}" if self.prefix else seq

    def member(self, group_id: str, index: int) -> EffectScope:
        """Child scope for member ``index`` of parallel group ``group_id``."""
        return EffectScope(self.run_id, member_id(group_id, index))


def member_id(group_id: str, index: int) -> str:
    """Stable id of a parallel member, derived from group id and list index."""
    return f"{group_id}.{index}"


def follows(effect_id: str, earlier: str) -> bool:
    """
    True if ``effect_id`` runs after ``earlier`` in program order.

    Ids are compared segment by segment. Where they first differ, a larger
    effect segment comes later; member segments belong to concurrent
    siblings and order nothing. An id never follows its own ancestors or
    descendants.
    """
    for depth, (segment, other) in enumerate(
        zip(effect_id.split("."), earlier.split("."))
    ):
        if segment != other:
            return depth % 2 == 0 and int(segment) > int(other)
    return False


def canonical_json(value: Any) -> str:
    """Canonical JSON: sorted keys, no extra whitespace.

    Raises:
        TypeError: If the value is not JSON-serializable
        ValueError: If the value contains NaN/Infinity or circular references
    """
    return json.dumps(
        value, sort_keys=True, separators=(",", ":"), allow_nan=False
    )


def fingerprint(value: Any) -> str:
    """Hex-encoded SHA-256 hash of the canonical JSON form."""
    return hashlib.sha256(canonical_json(value).encode("utf-8")).hexdigest()


def normalize(value: Any) -> Any:
    """Round-trip through JSON so values compare the way they are stored."""
    return json.loads(canonical_json(value))
