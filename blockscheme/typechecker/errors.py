"""
Tagged error records produced by type inference and type checking
"""

from dataclasses import dataclass
from typing import ClassVar, Optional, Union

from blockscheme.ast.nodes import ASTNode, Call, NameBinding, Var
from blockscheme.ast.serialize import serialize_expr
from blockscheme.typechecker.serialize import pretty_print_type
from blockscheme.typechecker.types import Type


@dataclass(frozen=True)
class UnboundVariable:
    tag: ClassVar[str] = "UnboundVariable"
    var: Union[Var, NameBinding]


@dataclass(frozen=True)
class TypeMismatch:
    tag: ClassVar[str] = "TypeMismatch"
    e1: Optional[ASTNode]
    e2: Optional[ASTNode]
    t1: Type
    t2: Type


@dataclass(frozen=True)
class ArityMismatch:
    tag: ClassVar[str] = "ArityMismatch"
    call: Call
    called_type: Type
    arity: int
    attempted_call_arity: int


@dataclass(frozen=True)
class VariadicArityMismatch:
    tag: ClassVar[str] = "VariadicArityMismatch"
    call: Call
    called_type: Type
    min_arity: Optional[int]
    max_arity: Optional[int]
    attempted_call_arity: int


@dataclass(frozen=True)
class NotCallable:
    tag: ClassVar[str] = "NotCallable"
    call: Call
    called_type: Type


@dataclass(frozen=True)
class OccursCheckFailure:
    tag: ClassVar[str] = "OccursCheckFailure"
    e1: Optional[ASTNode]
    e2: Optional[ASTNode]
    t1: Type
    t2: Type


@dataclass(frozen=True)
class InvalidAssignmentToType:
    tag: ClassVar[str] = "InvalidAssignmentToType"
    expr: ASTNode
    type: Type


@dataclass(frozen=True)
class InvalidAssignment:
    tag: ClassVar[str] = "InvalidAssignment"
    expr: ASTNode


@dataclass(frozen=True)
class DuplicateDefinition:
    tag: ClassVar[str] = "DuplicateDefinition"
    id: str


InferenceError = Union[
    UnboundVariable,
    TypeMismatch,
    ArityMismatch,
    VariadicArityMismatch,
    NotCallable,
    OccursCheckFailure,
]

TypecheckError = Union[
    InferenceError,
    InvalidAssignmentToType,
    InvalidAssignment,
    DuplicateDefinition,
]


class TypeInferenceError(Exception):
    def __init__(self, message: str, error: Optional[TypecheckError] = None) -> None:
        self.message = message
        self.error = error
        super().__init__(message)


def _show(expr: Optional[ASTNode]) -> str:
    return "<unknown>" if expr is None else serialize_expr(expr)


def _plural(count: int, word: str) -> str:
    return f"{count} {word}" if count == 1 else f"{count} {word}s"


def describe_error(error: TypecheckError) -> str:
    """Human readable description of an error record"""
    match error:
        case UnboundVariable(var=var):
            return f"Unbound variable: {var.name}"
        case TypeMismatch(e1=e1, e2=e2, t1=t1, t2=t2):
            return (
                f"Type mismatch: {_show(e1)} has type {pretty_print_type(t1)} "
                f"but {_show(e2)} has type {pretty_print_type(t2)}"
            )
        case ArityMismatch(called_type=called_type, arity=arity, attempted_call_arity=attempted):
            return (
                f"Function of type {pretty_print_type(called_type)} expects "
                f"{_plural(arity, 'argument')} but was called with {attempted}"
            )
        case VariadicArityMismatch(
            called_type=called_type,
            min_arity=min_arity,
            max_arity=max_arity,
            attempted_call_arity=attempted,
        ):
            low = 0 if min_arity is None else min_arity
            high = "any number of" if max_arity is None else str(max_arity)
            return (
                f"Function of type {pretty_print_type(called_type)} expects "
                f"between {low} and {high} arguments but was called with {attempted}"
            )
        case NotCallable(call=call, called_type=called_type):
            return f"{_show(call.called)} has type {pretty_print_type(called_type)} and cannot be called"
        case OccursCheckFailure(t1=t1, t2=t2):
            return f"Cannot construct infinite type: {pretty_print_type(t1)} occurs in {pretty_print_type(t2)}"
        case InvalidAssignmentToType(expr=expr, type=expected):
            return f"{_show(expr)} is not assignable to type {pretty_print_type(expected)}"
        case InvalidAssignment(expr=expr):
            return f"No valid type assignment for {_show(expr)}"
        case DuplicateDefinition(id=name):
            return f"Duplicate definition of {name}"
        case _:
            raise TypeError(f"Unknown error record: {error!r}")


def error_involves_expr(error: TypecheckError, expr: ASTNode) -> bool:
    """Whether `expr` (by identity) is one of the nodes the error refers to"""
    match error:
        case UnboundVariable(var=var):
            return var is expr
        case TypeMismatch(e1=e1, e2=e2) | OccursCheckFailure(e1=e1, e2=e2):
            return e1 is expr or e2 is expr
        case ArityMismatch(call=call) | VariadicArityMismatch(call=call) | NotCallable(call=call):
            return call is expr
        case InvalidAssignmentToType(expr=target) | InvalidAssignment(expr=target):
            return target is expr
        case _:
            return False
