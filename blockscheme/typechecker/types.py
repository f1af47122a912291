"""
Type representations for the local type inference system
"""

import dataclasses
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional, Set, Tuple


class Type(ABC):
    """Base class for all types"""

    @abstractmethod
    def free_vars(self) -> Set[str]:
        """Return the set of free type variables in this type"""
        pass

    @abstractmethod
    def __str__(self) -> str:
        pass


@dataclass(frozen=True)
class TypeVar(Type):
    """Type variable (e.g., #a, #b)"""

    name: str

    def free_vars(self) -> Set[str]:
        return {self.name}

    def __str__(self) -> str:
        return "#" + self.name


@dataclass(frozen=True)
class Unknown(Type):
    """Placeholder for a type that has not been solved yet.

    Unknowns only exist while an inference pass is running; they are never
    part of a type handed back to callers.
    """

    id: str

    def free_vars(self) -> Set[str]:
        return set()

    def __str__(self) -> str:
        return "?" + self.id


@dataclass(frozen=True)
class ConcreteType(Type):
    """Type constructor applied to zero or more parameters (e.g., Integer, (List Integer))"""

    tag: str
    params: Tuple[Type, ...] = ()

    def free_vars(self) -> Set[str]:
        result: Set[str] = set()
        for param in self.params:
            result |= param.free_vars()
        return result

    def __str__(self) -> str:
        if not self.params:
            return self.tag
        params_str = " ".join(str(param) for param in self.params)
        return f"({self.tag} {params_str})"


@dataclass(frozen=True)
class VariadicFunctionType(ConcreteType):
    """Function accepting a range of argument counts.

    The last parameter is the result type; the parameter before it repeats
    zero or more times.
    """

    tag: str = "Function*"
    min_arg_count: Optional[int] = None
    max_arg_count: Optional[int] = None

    def __str__(self) -> str:
        options = []
        if self.min_arg_count is not None:
            options.append(f":min {self.min_arg_count}")
        if self.max_arg_count is not None:
            options.append(f":max {self.max_arg_count}")
        parts = [self.tag] + options + [str(param) for param in self.params]
        return "(" + " ".join(parts) + ")"


@dataclass(frozen=True)
class ForallType(Type):
    """Quantified type (e.g., (All (#a) (Function #a #a)))"""

    bound: Tuple[str, ...]
    body: Type

    def free_vars(self) -> Set[str]:
        return self.body.free_vars() - set(self.bound)

    def __str__(self) -> str:
        bound_str = " ".join("#" + name for name in self.bound)
        return f"(All ({bound_str}) {self.body})"


# Types that may still contain unknowns
InferrableType = Type

ANY_TAG = "Any"
UNTYPED_TAG = "?"
NEVER_TAG = "Never"
FUNCTION_TAG = "Function"
VARIADIC_FUNCTION_TAG = "Function*"
PROCEDURE_TAG = "Procedure"
LIST_TAG = "List"
PROMISE_TAG = "Promise"

# Built-in types
ANY = ConcreteType(ANY_TAG)
NEVER = ConcreteType(NEVER_TAG)
# gradual type of unannotated binders in the checker, compatible with everything
UNTYPED = ConcreteType(UNTYPED_TAG)
INTEGER = ConcreteType("Integer")
NUMBER = ConcreteType("Number")
BOOLEAN = ConcreteType("Boolean")
STRING = ConcreteType("String")
SYMBOL = ConcreteType("Symbol")
NULL = ConcreteType("Null")
EMPTY = ConcreteType("Empty")


def function_type(*params_and_result: Type) -> ConcreteType:
    """Function type; the last argument is the result type"""
    return ConcreteType(FUNCTION_TAG, tuple(params_and_result))


def procedure_type(result: Type) -> ConcreteType:
    """Type of a value that is called with no arguments"""
    return ConcreteType(PROCEDURE_TAG, (result,))


def list_type(element: Type) -> ConcreteType:
    return ConcreteType(LIST_TAG, (element,))


def variadic_function_type(
    *params_and_result: Type,
    min_arg_count: Optional[int] = None,
    max_arg_count: Optional[int] = None,
) -> VariadicFunctionType:
    return VariadicFunctionType(
        params=tuple(params_and_result),
        min_arg_count=min_arg_count,
        max_arg_count=max_arg_count,
    )


def param_names(tag: str, count: int) -> List[str]:
    """Names of the type parameters of a constructor, in order"""
    match tag:
        case "List":
            return ["element"][:count] + [str(i) for i in range(1, count)]
        case "Promise":
            return ["value"][:count] + [str(i) for i in range(1, count)]
        case "Procedure":
            return ["out"][:count] + [str(i) for i in range(1, count)]
        case "Function" | "Function*":
            if count == 0:
                return []
            if count == 2:
                return ["in", "out"]
            return [f"in{i}" for i in range(1, count)] + ["out"]
        case _:
            return [str(i) for i in range(count)]


def is_type_var(t: Type) -> bool:
    return isinstance(t, TypeVar)


def is_unknown(t: Type) -> bool:
    return isinstance(t, Unknown)


def is_forall_type(t: Type) -> bool:
    return isinstance(t, ForallType)


def is_variadic_function_type(t: Type) -> bool:
    return isinstance(t, VariadicFunctionType)


def has_tag(t: Type, tag: str) -> bool:
    return isinstance(t, ConcreteType) and t.tag == tag


def type_params(t: Type) -> Dict[str, Type]:
    """Named parameters of a type, in declaration order"""
    match t:
        case TypeVar() | Unknown():
            return {}
        case ForallType(body=body):
            return type_params(body)
        case ConcreteType(tag=tag, params=params):
            return dict(zip(param_names(tag, len(params)), params))
        case _:
            raise TypeError(f"Unknown type in type_params: {type(t)}")


def type_param_map(t: Type, fn: Callable[[Type], Type]) -> Type:
    """Apply `fn` to the immediate structural children of `t`.

    Type variables and unknowns have no children and are returned as is.
    """
    match t:
        case TypeVar() | Unknown():
            return t
        case ForallType(bound=bound, body=body):
            return ForallType(bound, fn(body))
        case VariadicFunctionType(params=params):
            return dataclasses.replace(t, params=tuple(fn(param) for param in params))
        case ConcreteType(tag=tag, params=params):
            return ConcreteType(tag, tuple(fn(param) for param in params))
        case _:
            raise TypeError(f"Unknown type in type_param_map: {type(t)}")


def has_no_unknown(t: Type) -> bool:
    match t:
        case Unknown():
            return False
        case TypeVar():
            return True
        case ForallType(body=body):
            return has_no_unknown(body)
        case ConcreteType(params=params):
            return all(has_no_unknown(param) for param in params)
        case _:
            raise TypeError(f"Unknown type in has_no_unknown: {type(t)}")


def function_param_types(fn_type: ConcreteType) -> List[Type]:
    return list(fn_type.params[:-1])


def function_result_type(fn_type: ConcreteType) -> Type:
    return fn_type.params[-1] if fn_type.params else ANY


def function_min_arg_count(t: Type) -> int:
    match t:
        case ForallType(body=body):
            return function_min_arg_count(body)
        case VariadicFunctionType(min_arg_count=min_arg_count, params=params):
            if min_arg_count is not None:
                return min_arg_count
            # one for the repeated parameter, one for the result
            return max(0, len(params) - 2)
        case ConcreteType(tag="Function", params=params):
            return max(0, len(params) - 1)
        case _:
            return 0


def function_max_arg_count(t: Type) -> float:
    match t:
        case ForallType(body=body):
            return function_max_arg_count(body)
        case VariadicFunctionType(max_arg_count=max_arg_count):
            return math.inf if max_arg_count is None else max_arg_count
        case ConcreteType(tag="Function", params=params):
            return max(0, len(params) - 1)
        case _:
            return math.inf


def variadic_param_types(variadic: VariadicFunctionType, arg_count: int) -> List[Type]:
    """Parameter types for a call with `arg_count` arguments.

    Positions past the declared parameters reuse the last one.
    """
    params = function_param_types(variadic)
    if not params:
        return []
    return [params[i] if i < len(params) else params[-1] for i in range(arg_count)]


def curry_function_type(t: Type) -> Type:
    """Rewrite an n-ary Function type as a chain of one-argument Function types.

    A Function with no parameters becomes a Procedure. Only the outermost
    constructor is rewritten.
    """
    if not has_tag(t, FUNCTION_TAG) or isinstance(t, VariadicFunctionType):
        return t
    assert isinstance(t, ConcreteType)
    params = function_param_types(t)
    result = function_result_type(t)
    if not params:
        return procedure_type(result)
    if len(params) == 1:
        return t
    curried: Type = result
    for param in reversed(params):
        curried = function_type(param, curried)
    return curried


def _letter_name(index: int) -> str:
    letter = chr(ord("a") + index % 26)
    round_ = index // 26
    return letter if round_ == 0 else f"{letter}{round_}"


class TypeVarNameGenerator:
    """Generates type variable names: a, b, ..., z, a1, b1, ..."""

    def __init__(self, avoid: Iterable[str] = ()) -> None:
        self.counter = 0
        self.avoid: Set[str] = set(avoid)

    def fresh(self) -> str:
        """Generate a name that is not in `avoid`"""
        while True:
            name = _letter_name(self.counter)
            self.counter += 1
            if name not in self.avoid:
                self.avoid.add(name)
                return name
