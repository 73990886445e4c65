"""
Binary operator registry.

Every operator symbol owns an ordered list of (left kind, right kind,
implementation) mappings. Resolution looks at the runtime kinds of *both*
operands:

1. the first mapping whose kinds match exactly,
2. otherwise, when both kinds coincide, the left operand's own same-kind
   method (``add`` for '+', ``equals`` semantics for '==' ...),
3. otherwise OperationNotSupportedError naming the symbol and both kinds.

The registry is populated once during startup (see ``bootstrap``) and then
sealed; a sealed registry ignores repeated registrations and rejects new ones.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Dict, Iterator, List, Optional, Tuple

from ..kinds import ValueKind
from ..errors import OperationNotSupportedError, RegistrySealedError
from .values import Value, Scalar

logger = logging.getLogger(__name__)

Implementation = Callable[[Value, Value], Value]

# Same-kind fallbacks: operator symbol -> method on the left operand.
FALLBACK_METHODS: Dict[str, str] = {
    "+": "add",
    "-": "subtract",
    "*": "multiply",
    "/": "divide",
    "^": "power",
    ".*": "elementwise_multiply",
    "./": "elementwise_divide",
    ".^": "elementwise_power",
}


def _equal(left: Value, right: Value) -> Value:
    return Scalar(1.0 if left == right else 0.0)


def _not_equal(left: Value, right: Value) -> Value:
    return Scalar(0.0 if left == right else 1.0)


EQUALITY_FALLBACKS: Dict[str, Implementation] = {
    "==": _equal,
    "~=": _not_equal,
}


@dataclass(frozen=True)
class BinaryOperatorMapping:
    """One (symbol, left kind, right kind) -> implementation entry."""
    symbol: str
    left: ValueKind
    right: ValueKind
    implementation: Implementation

    @property
    def key(self) -> Tuple[str, ValueKind, ValueKind]:
        return (self.symbol, self.left, self.right)

    def matches(self, left: ValueKind, right: ValueKind) -> bool:
        return self.left == left and self.right == right


class BinaryOperatorMappingList:
    """The ordered mappings of one operator symbol, unique by kind pair."""

    def __init__(self, symbol: str):
        self.symbol = symbol
        self._mappings: List[BinaryOperatorMapping] = []

    def add(self, mapping: BinaryOperatorMapping) -> bool:
        """Append a mapping; returns False if its key is already present."""
        if self.contains(mapping.left, mapping.right):
            return False
        self._mappings.append(mapping)
        return True

    def contains(self, left: ValueKind, right: ValueKind) -> bool:
        return self.find(left, right) is not None

    def find(self, left: ValueKind, right: ValueKind) -> Optional[BinaryOperatorMapping]:
        for mapping in self._mappings:
            if mapping.matches(left, right):
                return mapping
        return None

    def __len__(self) -> int:
        return len(self._mappings)

    def __iter__(self) -> Iterator[BinaryOperatorMapping]:
        return iter(self._mappings)


class OperatorRegistry:
    """
    Registry of binary operator implementations keyed on both operand kinds.

    Usage:
        registry = OperatorRegistry()
        registry.register("+", STRING, SCALAR, concatenate)
        registry.apply("+", String("a"), Scalar(1))   # String("a1")
    """

    def __init__(self):
        self._lists: Dict[str, BinaryOperatorMappingList] = {}
        self._sealed = False

    @property
    def sealed(self) -> bool:
        return self._sealed

    def seal(self) -> None:
        """Close the registry to new mappings."""
        self._sealed = True
        logger.debug("operator registry sealed with %d mapping(s)",
                      sum(len(m) for m in self._lists.values()))

    def mappings(self, symbol: str) -> BinaryOperatorMappingList:
        """The mapping list for a symbol (empty if nothing is registered)."""
        return self._lists.get(symbol) or BinaryOperatorMappingList(symbol)

    def symbols(self) -> List[str]:
        return sorted(self._lists)

    def register(self, symbol: str, left: ValueKind, right: ValueKind,
                 implementation: Implementation) -> bool:
        """
        Register an implementation for ``left symbol right``.

        Registration is idempotent: the first mapping for a key wins and
        later ones are ignored. Returns True when a mapping was added.
        """
        mappings = self._lists.get(symbol)
        if mappings is not None and mappings.contains(left, right):
            return False
        if self._sealed:
            raise RegistrySealedError(
                f"cannot register operator '{symbol}' for {left} and {right} after startup")
        if mappings is None:
            mappings = self._lists[symbol] = BinaryOperatorMappingList(symbol)
        mappings.add(BinaryOperatorMapping(symbol, left, right, implementation))
        logger.debug("registered operator '%s' for (%s, %s)", symbol, left, right)
        return True

    def resolve(self, symbol: str, left: Value, right: Value) -> Implementation:
        """Find the implementation for the runtime kinds of both operands."""
        mappings = self._lists.get(symbol)
        if mappings is not None:
            mapping = mappings.find(left.kind, right.kind)
            if mapping is not None:
                return mapping.implementation

        if left.kind == right.kind:
            if symbol in EQUALITY_FALLBACKS:
                return EQUALITY_FALLBACKS[symbol]
            method = FALLBACK_METHODS.get(symbol)
            if method is not None:
                return lambda l, r: getattr(l, method)(r)

        raise OperationNotSupportedError(symbol, left.kind, right.kind)

    def apply(self, symbol: str, left: Value, right: Value) -> Value:
        """Evaluate ``left symbol right``."""
        return self.resolve(symbol, left, right)(left, right)
