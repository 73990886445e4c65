"""
One-time runtime initialization.

``initialize()`` is the barrier every evaluation passes through. The first
caller populates the process-wide registries in a fixed order:

1. operator mappings of each value kind: Scalar, Matrix, String,
   Arguments, Function
2. built-in functions and constants
3. startup hooks added with ``register_startup_hook``

and then seals them. Later callers return immediately. After the barrier the
registries are read-only, so independent evaluations may run on separate
threads without further locking.
"""

import logging
import threading
from typing import Callable, List, Optional, Tuple

from ..errors import RegistrySealedError
from .values import VALUE_CLASSES
from .operators import OperatorRegistry
from .builtins import BuiltinRegistry, _install_registry

logger = logging.getLogger(__name__)

StartupHook = Callable[[OperatorRegistry, BuiltinRegistry], None]

_lock = threading.Lock()
_initialized = False
_operators: Optional[OperatorRegistry] = None
_builtins: Optional[BuiltinRegistry] = None
_hooks: List[StartupHook] = []


def register_startup_hook(hook: StartupHook) -> None:
    """
    Add extra registrations to the startup phase.

    The hook receives the operator and builtin registries before they are
    sealed. Hooks can only be added before the first evaluation.
    """
    with _lock:
        if _initialized:
            raise RegistrySealedError("startup hooks must be registered before the runtime is initialized")
        _hooks.append(hook)


def initialize() -> Tuple[OperatorRegistry, BuiltinRegistry]:
    """Populate and seal the registries exactly once."""
    global _initialized, _operators, _builtins
    if _initialized:
        return _operators, _builtins
    with _lock:
        if _initialized:
            return _operators, _builtins

        operators = OperatorRegistry()
        for cls in VALUE_CLASSES:
            cls.register_operators(operators)
            logger.debug("registered operators of %s", cls.header)

        builtins = BuiltinRegistry()
        builtins.register_defaults()

        for hook in _hooks:
            hook(operators, builtins)

        operators.seal()
        builtins.seal()

        _operators, _builtins = operators, builtins
        _install_registry(builtins)
        _initialized = True
        logger.debug("runtime initialized")
    return _operators, _builtins


def is_initialized() -> bool:
    return _initialized


def get_operator_registry() -> OperatorRegistry:
    """The sealed process-wide operator registry."""
    return initialize()[0]
