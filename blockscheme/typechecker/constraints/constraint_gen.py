"""
Constraint generation for local type inference
"""

import dataclasses
from typing import Collection, List, Optional

from blockscheme.typechecker.constraints.constraint import SubtypeConstraint, UntypedConstraint
from blockscheme.typechecker.constraints.constraint_set import (
    ConstraintSet,
    constraint_set_meet,
    constraint_sets_meet,
)
from blockscheme.typechecker.subtyping import Variance, is_subtype, type_param_variance
from blockscheme.typechecker.types import (
    ANY,
    NEVER,
    UNTYPED_TAG,
    ConcreteType,
    ForallType,
    Type,
    TypeVar,
    VariadicFunctionType,
    function_max_arg_count,
    function_min_arg_count,
    function_param_types,
    function_result_type,
    function_type,
    has_tag,
    variadic_param_types,
)


def _eliminate(variables: Collection[str], t: Type, up: bool) -> Type:
    match t:
        case TypeVar(name=name):
            if name not in variables:
                return t
            return ANY if up else NEVER
        case ForallType(bound=bound, body=body):
            inner = [name for name in variables if name not in bound]
            return ForallType(bound, _eliminate(inner, body, up))
        case ConcreteType():
            params: List[Type] = []
            for variance, param in zip(type_param_variance(t), t.params):
                match variance:
                    case Variance.COVARIANT:
                        params.append(_eliminate(variables, param, up))
                    case Variance.CONTRAVARIANT:
                        params.append(_eliminate(variables, param, not up))
                    case Variance.INVARIANT:
                        params.append(eliminate_fixed(variables, param))
            return dataclasses.replace(t, params=tuple(params))
        case _:
            return t


def eliminate_up(variables: Collection[str], t: Type) -> Type:
    """Smallest supertype of `t` that mentions none of `variables`"""
    return _eliminate(variables, t, True)


def eliminate_down(variables: Collection[str], t: Type) -> Type:
    """Largest subtype of `t` that mentions none of `variables`"""
    return _eliminate(variables, t, False)


def eliminate_fixed(variables: Collection[str], t: Type) -> Type:
    """Remove `variables` from a position that is neither co- nor contravariant"""
    if variables and t.free_vars() & set(variables):
        return ANY
    return t


def generate_constraints(
    constrain_var_names: Collection[str],
    subtype: Type,
    supertype: Type,
    scope_var_names: Collection[str] = (),
) -> Optional[ConstraintSet]:
    """Constraints on `constrain_var_names` under which `subtype` is a subtype of `supertype`.

    Variables in `scope_var_names` are bound by an enclosing quantifier and
    may not leak into the constraints. Returns None if no constraint set
    makes the relation hold.
    """
    if has_tag(subtype, UNTYPED_TAG) or has_tag(supertype, UNTYPED_TAG):
        other = supertype if has_tag(subtype, UNTYPED_TAG) else subtype
        # every variable of the other side is poisoned by the untyped bound
        return {name: UntypedConstraint() for name in sorted(other.free_vars())}
    if is_subtype(subtype, supertype):
        return {}

    match (subtype, supertype):
        case (TypeVar(name=name), _) if name in constrain_var_names:
            return {name: SubtypeConstraint(NEVER, eliminate_down(scope_var_names, supertype))}
        case (_, TypeVar(name=name)) if name in constrain_var_names:
            return {name: SubtypeConstraint(eliminate_up(scope_var_names, subtype), ANY)}
        case (ForallType(bound=bound1, body=body1), ForallType(bound=bound2, body=body2)):
            if bound1 != bound2:
                return None
            return generate_constraints(
                constrain_var_names,
                body1,
                body2,
                list(scope_var_names) + list(bound1),
            )
        case (VariadicFunctionType(), ConcreteType(tag="Function")):
            return _generate_variadic_constraints(constrain_var_names, subtype, supertype, scope_var_names)
        case (ConcreteType(), ConcreteType()):
            if (
                subtype.tag != supertype.tag
                or len(subtype.params) != len(supertype.params)
                or isinstance(supertype, VariadicFunctionType)
            ):
                return None
            return _generate_param_constraints(
                constrain_var_names,
                type_param_variance(subtype),
                subtype.params,
                supertype.params,
                scope_var_names,
            )
        case _:
            return None


def _generate_param_constraints(
    constrain_var_names: Collection[str],
    variances: List[Variance],
    sub_params: tuple,
    super_params: tuple,
    scope_var_names: Collection[str],
) -> Optional[ConstraintSet]:
    constraint_sets: List[ConstraintSet] = []
    for variance, sub_param, super_param in zip(variances, sub_params, super_params):
        match variance:
            case Variance.COVARIANT:
                constraints = generate_constraints(constrain_var_names, sub_param, super_param, scope_var_names)
            case Variance.CONTRAVARIANT:
                constraints = generate_constraints(constrain_var_names, super_param, sub_param, scope_var_names)
            case Variance.INVARIANT:
                down = generate_constraints(constrain_var_names, sub_param, super_param, scope_var_names)
                up = generate_constraints(constrain_var_names, super_param, sub_param, scope_var_names)
                constraints = None if down is None or up is None else constraint_set_meet(down, up)
        if constraints is None:
            return None
        constraint_sets.append(constraints)
    return constraint_sets_meet(constraint_sets)


def _generate_variadic_constraints(
    constrain_var_names: Collection[str],
    variadic: VariadicFunctionType,
    fixed: ConcreteType,
    scope_var_names: Collection[str],
) -> Optional[ConstraintSet]:
    arg_count = len(function_param_types(fixed))
    if not function_param_types(variadic):
        return None
    if not function_min_arg_count(variadic) <= arg_count <= function_max_arg_count(variadic):
        return None
    expanded = function_type(*variadic_param_types(variadic, arg_count), function_result_type(variadic))
    return generate_constraints(constrain_var_names, expanded, fixed, scope_var_names)
