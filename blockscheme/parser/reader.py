"""
S-expression reader.

Converts source text into plain data: lists, numbers, strings, booleans,
`Symbol` and `Quote` values. The expression and type builders interpret
that data.
"""

import re
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any, List, Union

from lark import Lark, Token, Transformer
from lark.exceptions import LarkError, VisitError

GRAMMAR = Path(__file__).parent / "scheme.lark"


class SchemeSyntaxError(Exception):
    pass


@dataclass(frozen=True)
class Symbol:
    name: str


@dataclass(frozen=True)
class Quote:
    datum: "Datum"


Datum = Union[int, float, bool, str, Symbol, Quote, List[Any]]

_ESCAPES = {"n": "\n", "t": "\t", "r": "\r"}


class DatumTransformer(Transformer):
    """Transformer that converts Lark parse trees to data."""

    def start(self, items: List[Any]) -> List[Datum]:
        return list(items)

    def list(self, items: List[Any]) -> List[Datum]:
        return list(items)

    def quoted(self, items: List[Any]) -> Quote:
        return Quote(items[0])

    def number(self, items: List[Token]) -> Union[int, float]:
        text = items[0].value
        try:
            return int(text)
        except ValueError:
            return float(text)

    def boolean(self, items: List[Token]) -> bool:
        return items[0].value in ("#t", "#true")

    def string(self, items: List[Token]) -> str:
        # Remove quotes
        body = items[0].value[1:-1]
        return re.sub(r"\\(.)", lambda match: _ESCAPES.get(match.group(1), match.group(1)), body)

    def symbol(self, items: List[Token]) -> Symbol:
        return Symbol(items[0].value)


@lru_cache(maxsize=None)
def _parser() -> Lark:
    return Lark.open(str(GRAMMAR), parser="lalr")


def read_datums(text: str) -> List[Datum]:
    """Read every top-level datum in `text`"""
    try:
        tree = _parser().parse(text)
        return DatumTransformer().transform(tree)
    except VisitError as e:
        raise SchemeSyntaxError(str(e.orig_exc)) from e
    except LarkError as e:
        raise SchemeSyntaxError(str(e)) from e


def read_datum(text: str) -> Datum:
    """Read exactly one datum"""
    datums = read_datums(text)
    if len(datums) != 1:
        raise SchemeSyntaxError(f"Expected exactly one form, found {len(datums)}")
    return datums[0]
