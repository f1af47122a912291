from pathlib import Path
from typing import List, Union

from blockscheme.ast.nodes import (
    Binder,
    BoolLiteral,
    Call,
    Cond,
    CondCase,
    Define,
    Expr,
    Hole,
    If,
    Lambda,
    Let,
    LetBinding,
    Letrec,
    ListLiteral,
    NameBinding,
    NullLiteral,
    NumberLiteral,
    Sequence,
    StringLiteral,
    Var,
)
from blockscheme.ast.tree import HOLE_IDENTIFIER, Tree
from blockscheme.parser.reader import Datum, Quote, SchemeSyntaxError, Symbol, read_datum, read_datums
from blockscheme.typechecker.parse import build_type

HOLE_NAMES = {"_", HOLE_IDENTIFIER}
SPECIAL_FORMS = {"define", "let", "letrec", "lambda", "sequence", "begin", "if", "cond"}


def _build_binder(datum: Datum) -> Binder:
    match datum:
        case Symbol(name=name) if name in HOLE_NAMES:
            return Hole()
        case Symbol(name=name) if name not in SPECIAL_FORMS:
            return NameBinding(name)
        case [Symbol(name=name), Symbol(name=":"), annotation] if name not in SPECIAL_FORMS:
            return NameBinding(name, build_type(annotation))
        case _:
            raise SchemeSyntaxError(f"Invalid binder: {datum!r}")


def _build_bindings(datum: Datum) -> List[LetBinding]:
    match datum:
        case list():
            bindings = []
            for binding in datum:
                match binding:
                    case [name, value]:
                        bindings.append(LetBinding(_build_binder(name), build_expr(value)))
                    case _:
                        raise SchemeSyntaxError(f"Invalid binding: {binding!r}")
            return bindings
        case _:
            raise SchemeSyntaxError(f"Invalid bindings: {datum!r}")


def _build_cond_case(datum: Datum) -> CondCase:
    match datum:
        case [condition, value]:
            return CondCase(build_expr(condition), build_expr(value))
        case _:
            raise SchemeSyntaxError(f"Invalid cond case: {datum!r}")


def build_expr(datum: Datum) -> Expr:
    """Interpret a datum as an expression"""
    match datum:
        case bool():
            return BoolLiteral(datum)
        case int() | float():
            return NumberLiteral(datum)
        case str():
            return StringLiteral(datum)
        case Symbol(name=name) if name in HOLE_NAMES:
            return Hole()
        case Symbol(name=name):
            return Var(name)
        case Quote(datum=[]):
            return NullLiteral()
        case Quote(datum=list() as elements):
            return ListLiteral([build_expr(element) for element in elements])
        case Quote():
            raise SchemeSyntaxError(f"Only lists can be quoted: {datum!r}")
        case []:
            raise SchemeSyntaxError("Empty application")
        case [Symbol(name="define"), name, value]:
            return Define(_build_binder(name), build_expr(value))
        case [Symbol(name="let"), bindings, body]:
            return Let(_build_bindings(bindings), build_expr(body))
        case [Symbol(name="letrec"), bindings, body]:
            return Letrec(_build_bindings(bindings), build_expr(body))
        case [Symbol(name="lambda"), list() as params, body]:
            return Lambda([_build_binder(param) for param in params], build_expr(body))
        case [Symbol(name="sequence" | "begin"), *exprs]:
            return Sequence([build_expr(expr) for expr in exprs])
        case [Symbol(name="if"), condition, consequent, alternative]:
            return If(build_expr(condition), build_expr(consequent), build_expr(alternative))
        case [Symbol(name="cond"), *cases]:
            return Cond([_build_cond_case(cond_case) for cond_case in cases])
        case [Symbol(name=name), *_] if name in SPECIAL_FORMS:
            raise SchemeSyntaxError(f"Malformed {name}: {datum!r}")
        case [called, *args]:
            return Call(build_expr(called), [build_expr(arg) for arg in args])
        case _:
            raise SchemeSyntaxError(f"Invalid expression: {datum!r}")


def parse_expr(text: str) -> Expr:
    """Parse a single expression"""
    return build_expr(read_datum(text))


def parse_program(text: str) -> List[Tree]:
    """Parse every top-level form into its own tree"""
    return [Tree(build_expr(datum)) for datum in read_datums(text)]


def parse_file(path: Union[str, Path]) -> List[Tree]:
    with open(path) as f:
        return parse_program(f.read())
