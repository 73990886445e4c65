"""
numscript runtime - tree-walking interpreter and value model.

This module provides:
- Value kinds: Scalar, Matrix, String, Arguments, FunctionValue
- OperatorRegistry: binary operators dispatched on both operand kinds
- BuiltinRegistry: built-in functions dispatched on argument kinds
- Context: scoped symbol table and display settings
- Interpreter / evaluate: statement evaluation
"""

from .values import (
    Value,
    Scalar,
    Matrix,
    String,
    Arguments,
    FunctionValue,
    deserialize_value,
    to_value,
)

from .operators import (
    BinaryOperatorMapping,
    BinaryOperatorMappingList,
    OperatorRegistry,
)

from .builtins import (
    Overload,
    BuiltinFunction,
    BuiltinRegistry,
    get_builtin_registry,
)

from .bootstrap import (
    initialize,
    register_startup_hook,
    get_operator_registry,
)

from .context import (
    Scope,
    Context,
    ContextState,
)

from .interpreter import (
    Interpreter,
    StatementResult,
    evaluate,
)

__all__ = [
    # Values
    "Value",
    "Scalar",
    "Matrix",
    "String",
    "Arguments",
    "FunctionValue",
    "deserialize_value",
    "to_value",
    # Operators
    "BinaryOperatorMapping",
    "BinaryOperatorMappingList",
    "OperatorRegistry",
    # Builtins
    "Overload",
    "BuiltinFunction",
    "BuiltinRegistry",
    "get_builtin_registry",
    # Startup
    "initialize",
    "register_startup_hook",
    "get_operator_registry",
    # Context
    "Scope",
    "Context",
    "ContextState",
    # Interpreter
    "Interpreter",
    "StatementResult",
    "evaluate",
]
