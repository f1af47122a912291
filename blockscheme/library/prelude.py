"""
Types of the built-in procedures available to every program
"""

from typing import Dict

from blockscheme.typechecker.parse import parse_type
from blockscheme.typechecker.types import Type

PRELUDE_TYPES: Dict[str, str] = {
    # Numbers
    "+": "(Function* Number Number)",
    "*": "(Function* Number Number)",
    "-": "(Function* :min 1 Number Number)",
    "/": "(Function* :min 1 Number Number)",
    "=": "(Function* :min 1 Number Boolean)",
    "<": "(Function* :min 1 Number Boolean)",
    ">": "(Function* :min 1 Number Boolean)",
    "<=": "(Function* :min 1 Number Boolean)",
    ">=": "(Function* :min 1 Number Boolean)",
    "quotient": "(Function Integer Integer Integer)",
    "remainder": "(Function Integer Integer Integer)",
    "abs": "(Function Number Number)",
    "random": "(Function Number)",
    # Booleans and predicates
    "not": "(Function Boolean Boolean)",
    "number?": "(Function Any Boolean)",
    "integer?": "(Function Any Boolean)",
    "string?": "(Function Any Boolean)",
    "boolean?": "(Function Any Boolean)",
    "procedure?": "(Function Any Boolean)",
    "null?": "(Function Any Boolean)",
    # Strings
    "string-append": "(Function* String String)",
    "string-length": "(Function String Integer)",
    "number->string": "(Function Number String)",
    "string->number": "(Function String Number)",
    # Lists
    "cons": "(All (#a) (Function #a (List #a) (List #a)))",
    "car": "(All (#a) (Function (List #a) #a))",
    "cdr": "(All (#a) (Function (List #a) (List #a)))",
    "list": "(All (#a) (Function* #a (List #a)))",
    "length": "(All (#a) (Function (List #a) Integer))",
    "append": "(All (#a) (Function (List #a) (List #a) (List #a)))",
    "map": "(All (#a #b) (Function (Function #a #b) (List #a) (List #b)))",
    "filter": "(All (#a) (Function (Function #a Boolean) (List #a) (List #a)))",
    "foldl": "(All (#a #b) (Function (Function #a #b #b) #b (List #a) #b))",
    # Output
    "display": "(Function Any Empty)",
}


def prelude_environment() -> Dict[str, Type]:
    """Fresh mapping from built-in names to their types"""
    return {name: parse_type(text) for name, text in PRELUDE_TYPES.items()}
