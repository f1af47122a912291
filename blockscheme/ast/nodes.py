from abc import ABC
from dataclasses import dataclass, field
from typing import List, Optional, Union

from blockscheme.typechecker.types import Type


@dataclass
class ASTNode(ABC):
    pass


# Literals
@dataclass
class NumberLiteral(ASTNode):
    value: Union[int, float]


@dataclass
class BoolLiteral(ASTNode):
    value: bool


@dataclass
class StringLiteral(ASTNode):
    value: str


@dataclass
class NullLiteral(ASTNode):
    pass


@dataclass
class ListLiteral(ASTNode):
    elements: List["Expr"] = field(default_factory=list)


# Empty slot in an expression being edited
@dataclass
class Hole(ASTNode):
    pass


# Variables and binders
@dataclass
class NameBinding(ASTNode):
    """Name introduced by define, let, letrec or lambda, with an optional type annotation"""

    name: str
    type: Optional[Type] = None


@dataclass
class Var(ASTNode):
    name: str


Binder = Union[NameBinding, Hole]


# Special forms
@dataclass
class Call(ASTNode):
    called: "Expr"
    args: List["Expr"] = field(default_factory=list)


@dataclass
class Define(ASTNode):
    name: Binder
    value: "Expr"


@dataclass
class LetBinding:
    name: Binder
    value: "Expr"


@dataclass
class Let(ASTNode):
    bindings: List[LetBinding]
    body: "Expr"


@dataclass
class Letrec(ASTNode):
    bindings: List[LetBinding]
    body: "Expr"


@dataclass
class Lambda(ASTNode):
    params: List[Binder]
    body: "Expr"


@dataclass
class Sequence(ASTNode):
    exprs: List["Expr"]


@dataclass
class If(ASTNode):
    condition: "Expr"
    consequent: "Expr"
    alternative: "Expr"


@dataclass
class CondCase:
    condition: "Expr"
    value: "Expr"


@dataclass
class Cond(ASTNode):
    cases: List[CondCase]


Expr = Union[
    NumberLiteral,
    BoolLiteral,
    StringLiteral,
    NullLiteral,
    ListLiteral,
    Hole,
    NameBinding,
    Var,
    Call,
    Define,
    Let,
    Letrec,
    Lambda,
    Sequence,
    If,
    Cond,
]
