from typing import Dict

from blockscheme.typechecker.types import ForallType, Type, TypeVar, type_param_map


def type_substitute(t: Type, substitution: Dict[str, Type]) -> Type:
    """Replace free type variables in `t` according to `substitution`"""
    match t:
        case TypeVar(name=name):
            return substitution.get(name, t)
        case ForallType(bound=bound, body=body):
            # bound variables shadow the substitution
            inner = {name: sub for name, sub in substitution.items() if name not in bound}
            return ForallType(bound, type_substitute(body, inner))
        case _:
            return type_param_map(t, lambda param: type_substitute(param, substitution))
