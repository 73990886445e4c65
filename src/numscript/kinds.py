"""
Value kinds for numscript.

Kinds form a small widening tree used by function dispatch:

    value
      matrix
        scalar      (a scalar is a 1x1 matrix)
      string
      arguments
      function

A parameter declared with a kind accepts any value whose kind is that kind
or lies below it. The number of steps up the tree is the widening distance;
overload resolution prefers the candidate with the smallest total distance.
"""

from dataclasses import dataclass
from typing import Dict, Optional


@dataclass(frozen=True)
class ValueKind:
    """A runtime value kind."""
    name: str
    parent: Optional["ValueKind"] = None

    def widening_distance(self, other: "ValueKind") -> Optional[int]:
        """Steps needed to widen ``other`` to this kind, or None if it cannot."""
        distance = 0
        kind: Optional[ValueKind] = other
        while kind is not None:
            if kind == self:
                return distance
            kind = kind.parent
            distance += 1
        return None

    def is_assignable_from(self, other: "ValueKind") -> bool:
        """Check if this kind can accept a value of the other kind."""
        return self.widening_distance(other) is not None

    def __str__(self) -> str:
        return self.name


VALUE = ValueKind("value")
MATRIX = ValueKind("matrix", VALUE)
SCALAR = ValueKind("scalar", MATRIX)
STRING = ValueKind("string", VALUE)
ARGUMENTS = ValueKind("arguments", VALUE)
FUNCTION = ValueKind("function", VALUE)

KINDS: Dict[str, ValueKind] = {
    kind.name: kind for kind in (VALUE, MATRIX, SCALAR, STRING, ARGUMENTS, FUNCTION)
}


def get_kind(name: str) -> Optional[ValueKind]:
    """Look up a kind by name."""
    return KINDS.get(name)
