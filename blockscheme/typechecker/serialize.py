from blockscheme.typechecker.types import (
    ConcreteType,
    ForallType,
    Type,
    TypeVar,
    Unknown,
    VariadicFunctionType,
)


def serialize_type(t: Type) -> str:
    """Canonical S-expression form, readable back with `parse_type`"""
    return str(t)


def pretty_print_type(t: Type) -> str:
    """Compact form for messages, with arrows for function types"""
    match t:
        case TypeVar(name=name):
            return "#" + name
        case Unknown():
            return "?"
        case ForallType(bound=bound, body=body):
            bound_str = " ".join("#" + name for name in bound)
            return f"∀{bound_str}. {pretty_print_type(body)}"
        case VariadicFunctionType(params=params) if params:
            *args, result = params
            args_str = " ".join(pretty_print_type(arg) for arg in args)
            return f"({args_str}... → {pretty_print_type(result)})"
        case ConcreteType(tag="Function", params=params) if params:
            *args, result = params
            args_str = "".join(pretty_print_type(arg) + " " for arg in args)
            return f"({args_str}→ {pretty_print_type(result)})"
        case ConcreteType(tag="Procedure", params=(result,)):
            return f"(→ {pretty_print_type(result)})"
        case ConcreteType(tag=tag, params=params):
            if not params:
                return tag
            return f"({tag} {' '.join(pretty_print_type(param) for param in params)})"
        case _:
            raise TypeError(f"Unknown type in pretty_print_type: {type(t)}")
