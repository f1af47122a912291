"""
Type inference over whole programs: a sequence of top-level forms where
each definition is visible to the forms after it.
"""

import logging
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from blockscheme.ast.nodes import Define
from blockscheme.ast.serialize import serialize_expr
from blockscheme.ast.tree import Tree, get_identifier, is_hole
from blockscheme.parser.parser import parse_program
from blockscheme.parser.reader import SchemeSyntaxError
from blockscheme.typechecker.errors import TypeInferenceError
from blockscheme.typechecker.infer import TypeInferrer
from blockscheme.typechecker.types import ForallType, Type

logger = logging.getLogger(__name__)


def _quantify(t: Type) -> Type:
    """Bind the free type variables of an inferred type so each use instantiates them afresh"""
    free = t.free_vars()
    if not free:
        return t
    return ForallType(tuple(sorted(free)), t)


def infer_program(
    trees: Iterable[Tree],
    env: Optional[Mapping[str, Type]] = None,
    inferrer: Optional[TypeInferrer] = None,
) -> List[Tuple[Tree, Type]]:
    """Infer every top-level form in order, raising on the first failure"""
    inferrer = inferrer or TypeInferrer()
    type_env: Dict[str, Type] = dict(env) if env else {}
    results = []
    for tree in trees:
        inferred = inferrer.infer(tree, type_env)
        if isinstance(tree.root, Define) and not is_hole(tree.root.name):
            type_env[get_identifier(tree.root.name)] = _quantify(inferred)
        results.append((tree, inferred))
    return results


def get_type_str(source: str, env: Optional[Mapping[str, Type]] = None) -> str:
    """Get type information for a program"""
    res = ""

    try:
        results = infer_program(parse_program(source), env)
        res += "Inferred types:\n"
        for tree, inferred in results:
            res += f"  {serialize_expr(tree.root)} :: {inferred}\n"
    except (SchemeSyntaxError, TypeInferenceError) as e:
        res += f"Type checking failed: {e}"
    return res


def type_check(source: str, env: Optional[Mapping[str, Type]] = None) -> bool:
    """Type check a program"""
    try:
        infer_program(parse_program(source), env)
        return True
    except (SchemeSyntaxError, TypeInferenceError) as e:
        logger.info("Type checking failed: %s", e)
        return False
