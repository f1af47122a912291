from enum import Enum
from typing import Callable, List

from blockscheme.typechecker.types import (
    ANY,
    ANY_TAG,
    FUNCTION_TAG,
    NEVER,
    NEVER_TAG,
    UNTYPED_TAG,
    ConcreteType,
    ForallType,
    Type,
    TypeVar,
    Unknown,
    VariadicFunctionType,
    function_max_arg_count,
    function_min_arg_count,
    function_param_types,
    function_result_type,
    has_tag,
)


class Variance(Enum):
    COVARIANT = "covariant"
    CONTRAVARIANT = "contravariant"
    INVARIANT = "invariant"


COVARIANT_TAGS = {"List", "Procedure", "Promise"}

# (subtype tag, supertype tag) pairs that hold regardless of parameters
NOMINAL_SUBTYPES = {
    ("Integer", "Number"),
    ("Empty", "List"),
    ("Null", "List"),
}


def type_param_variance(t: ConcreteType) -> List[Variance]:
    """Variance of each parameter of a type constructor"""
    count = len(t.params)
    if isinstance(t, VariadicFunctionType):
        return [Variance.INVARIANT] * count
    if t.tag in COVARIANT_TAGS:
        return [Variance.COVARIANT] * count
    if t.tag == FUNCTION_TAG:
        # parameters are contravariant, the result is covariant
        return [Variance.CONTRAVARIANT] * (count - 1) + [Variance.COVARIANT]
    return [Variance.INVARIANT] * count


def is_subtype(t1: Type, t2: Type) -> bool:
    """Check whether t1 is a subtype of t2"""
    if has_tag(t1, UNTYPED_TAG) or has_tag(t2, UNTYPED_TAG):
        return True
    if t1 == t2:
        return True
    if has_tag(t1, NEVER_TAG) or has_tag(t2, ANY_TAG):
        return True

    match (t1, t2):
        case (TypeVar(), _) | (_, TypeVar()) | (Unknown(), _) | (_, Unknown()):
            return False
        case (ForallType(bound=bound1, body=body1), ForallType(bound=bound2, body=body2)):
            return bound1 == bound2 and is_subtype(body1, body2)
        case (ForallType(), _) | (_, ForallType()):
            return False
        case (ConcreteType(), ConcreteType()):
            return _is_concrete_subtype(t1, t2)
        case _:
            raise TypeError(f"Unknown types in is_subtype: {type(t1)}, {type(t2)}")


def _is_concrete_subtype(t1: ConcreteType, t2: ConcreteType) -> bool:
    if (t1.tag, t2.tag) in NOMINAL_SUBTYPES:
        return True
    if isinstance(t1, VariadicFunctionType):
        return _is_variadic_subtype(t1, t2)
    if isinstance(t2, VariadicFunctionType):
        return False
    if t1.tag != t2.tag or len(t1.params) != len(t2.params):
        return False

    for variance, param1, param2 in zip(type_param_variance(t1), t1.params, t2.params):
        match variance:
            case Variance.COVARIANT:
                if not is_subtype(param1, param2):
                    return False
            case Variance.CONTRAVARIANT:
                if not is_subtype(param2, param1):
                    return False
            case Variance.INVARIANT:
                if param1 != param2:
                    return False
    return True


def _is_variadic_subtype(variadic: VariadicFunctionType, t2: ConcreteType) -> bool:
    """A variadic function is a subtype of a fixed function whose arity it accepts"""
    if isinstance(t2, VariadicFunctionType):
        return variadic == t2
    if t2.tag != FUNCTION_TAG:
        return False

    variadic_params = function_param_types(variadic)
    fixed_params = function_param_types(t2)
    if not variadic_params:
        return False

    arg_count = len(fixed_params)
    if not function_min_arg_count(variadic) <= arg_count <= function_max_arg_count(variadic):
        return False
    if not is_subtype(function_result_type(variadic), function_result_type(t2)):
        return False

    for i, fixed_param in enumerate(fixed_params):
        variadic_param = variadic_params[i] if i < len(variadic_params) else variadic_params[-1]
        if not is_subtype(fixed_param, variadic_param):
            return False
    return True


def _type_combine(
    t1: Type,
    t2: Type,
    take_min: bool,
    give_up: Type,
    combine_same: Callable[[Type, Type], Type],
    combine_opposite: Callable[[Type, Type], Type],
) -> Type:
    if has_tag(t1, UNTYPED_TAG):
        return t1
    if has_tag(t2, UNTYPED_TAG):
        return t2
    if is_subtype(t1, t2):
        return t1 if take_min else t2
    if is_subtype(t2, t1):
        return t2 if take_min else t1

    match (t1, t2):
        case (ForallType(bound=bound1, body=body1), ForallType(bound=bound2, body=body2)):
            if bound1 != bound2:
                return give_up
            return ForallType(bound1, combine_same(body1, body2))
        case (ConcreteType(), ConcreteType()):
            if (
                t1.tag != t2.tag
                or len(t1.params) != len(t2.params)
                or isinstance(t1, VariadicFunctionType)
                or isinstance(t2, VariadicFunctionType)
            ):
                return give_up

            params = []
            for variance, param1, param2 in zip(type_param_variance(t1), t1.params, t2.params):
                match variance:
                    case Variance.COVARIANT:
                        params.append(combine_same(param1, param2))
                    case Variance.CONTRAVARIANT:
                        params.append(combine_opposite(param1, param2))
                    case Variance.INVARIANT:
                        # neither was a subtype of the other, so the invariant parameters differ
                        return give_up
            return ConcreteType(t1.tag, tuple(params))
        case _:
            return give_up


def type_meet(t1: Type, t2: Type) -> Type:
    """Greatest lower bound of two types"""
    return _type_combine(t1, t2, True, NEVER, type_meet, type_join)


def type_join(t1: Type, t2: Type) -> Type:
    """Least upper bound of two types"""
    return _type_combine(t1, t2, False, ANY, type_join, type_meet)
