from typing import List, Optional

from blockscheme.parser.reader import Datum, SchemeSyntaxError, Symbol, read_datum
from blockscheme.typechecker.types import (
    VARIADIC_FUNCTION_TAG,
    ConcreteType,
    ForallType,
    Type,
    TypeVar,
    VariadicFunctionType,
)


def _type_var_name(datum: Datum) -> str:
    match datum:
        case bool():
            return "t" if datum else "f"
        case Symbol(name=name) if name.startswith("#") and len(name) > 1:
            return name[1:]
        case _:
            raise SchemeSyntaxError(f"Expected a type variable, found {datum!r}")


def _build_variadic(args: List[Datum]) -> VariadicFunctionType:
    min_arg_count: Optional[int] = None
    max_arg_count: Optional[int] = None
    rest = list(args)
    while rest and isinstance(rest[0], Symbol) and rest[0].name in (":min", ":max"):
        if len(rest) < 2 or isinstance(rest[1], bool) or not isinstance(rest[1], int):
            raise SchemeSyntaxError(f"{rest[0].name} expects an integer")
        if rest[0].name == ":min":
            min_arg_count = rest[1]
        else:
            max_arg_count = rest[1]
        rest = rest[2:]
    return VariadicFunctionType(
        params=tuple(build_type(arg) for arg in rest),
        min_arg_count=min_arg_count,
        max_arg_count=max_arg_count,
    )


def build_type(datum: Datum) -> Type:
    """Interpret a datum as a type"""
    match datum:
        case bool():
            # the reader takes #t and #f for booleans
            return TypeVar("t" if datum else "f")
        case Symbol(name=name) if name.startswith("#"):
            return TypeVar(_type_var_name(datum))
        case Symbol(name=name):
            return ConcreteType(name)
        case [Symbol(name="All"), list() as bound, body]:
            return ForallType(tuple(_type_var_name(var) for var in bound), build_type(body))
        case [Symbol(name=tag), *args] if tag == VARIADIC_FUNCTION_TAG:
            return _build_variadic(args)
        case [Symbol(name=tag), *args]:
            return ConcreteType(tag, tuple(build_type(arg) for arg in args))
        case _:
            raise SchemeSyntaxError(f"Invalid type: {datum!r}")


def parse_type(text: str) -> Type:
    """Parse a type written as an S-expression, e.g. (All (#a) (Function #a #a))"""
    return build_type(read_datum(text))
