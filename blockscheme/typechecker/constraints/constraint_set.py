"""
Constraint sets and the minimal-substitution solver
"""

from enum import Enum
from typing import Dict, Iterable, Optional

from blockscheme.typechecker.constraints.constraint import (
    TOP_CONSTRAINT,
    Constraint,
    EqualityConstraint,
    SubtypeConstraint,
    UntypedConstraint,
    constraint_meet,
    is_constraint_satisfiable,
)
from blockscheme.typechecker.subtyping import Variance, type_param_variance
from blockscheme.typechecker.types import UNTYPED, ConcreteType, ForallType, Type, TypeVar, Unknown

ConstraintSet = Dict[str, Constraint]


class TypeVarVariance(Enum):
    """How a type variable is used within a type"""

    CONSTANT = "constant"
    COVARIANT = "covariant"
    CONTRAVARIANT = "contravariant"
    INVARIANT = "invariant"


def are_constraints_satisfiable(constraints: ConstraintSet) -> bool:
    return all(is_constraint_satisfiable(constraint) for constraint in constraints.values())


def constraint_set_meet(first: ConstraintSet, second: ConstraintSet) -> Optional[ConstraintSet]:
    """Per-variable meet of two constraint sets; None if any variable has no solution"""
    result: ConstraintSet = {}
    for name in first.keys() | second.keys():
        met = constraint_meet(
            first.get(name, TOP_CONSTRAINT),
            second.get(name, TOP_CONSTRAINT),
        )
        if met is None:
            return None
        result[name] = met
    return result


def constraint_sets_meet(constraint_sets: Iterable[ConstraintSet]) -> Optional[ConstraintSet]:
    result: ConstraintSet = {}
    for constraint_set in constraint_sets:
        met = constraint_set_meet(result, constraint_set)
        if met is None:
            return None
        result = met
    return result


def _combine_variances(first: TypeVarVariance, second: TypeVarVariance) -> TypeVarVariance:
    if first == TypeVarVariance.CONSTANT:
        return second
    if second == TypeVarVariance.CONSTANT or first == second:
        return first
    return TypeVarVariance.INVARIANT


def _flip(variance: TypeVarVariance) -> TypeVarVariance:
    match variance:
        case TypeVarVariance.COVARIANT:
            return TypeVarVariance.CONTRAVARIANT
        case TypeVarVariance.CONTRAVARIANT:
            return TypeVarVariance.COVARIANT
        case _:
            return variance


def variance_for_type_var(name: str, t: Type) -> TypeVarVariance:
    """Compute whether `name` occurs covariantly, contravariantly, both or not at all in `t`"""
    match t:
        case TypeVar(name=var_name):
            return TypeVarVariance.COVARIANT if var_name == name else TypeVarVariance.CONSTANT
        case Unknown():
            return TypeVarVariance.CONSTANT
        case ForallType(bound=bound, body=body):
            if name in bound:
                return TypeVarVariance.CONSTANT
            return variance_for_type_var(name, body)
        case ConcreteType(params=params):
            result = TypeVarVariance.CONSTANT
            for param_variance, param in zip(type_param_variance(t), params):
                inner = variance_for_type_var(name, param)
                if inner == TypeVarVariance.CONSTANT:
                    continue
                match param_variance:
                    case Variance.CONTRAVARIANT:
                        inner = _flip(inner)
                    case Variance.INVARIANT:
                        inner = TypeVarVariance.INVARIANT
                result = _combine_variances(result, inner)
            return result
        case _:
            raise TypeError(f"Unknown type in variance_for_type_var: {type(t)}")


def _minimal_type(constraint: Constraint, variance: TypeVarVariance) -> Type:
    match constraint:
        case EqualityConstraint(type=exact):
            return exact
        case UntypedConstraint():
            return UNTYPED
        case SubtypeConstraint(lower_bound=lower, upper_bound=upper):
            if variance == TypeVarVariance.CONTRAVARIANT:
                return upper
            # constant, covariant and invariant variables take the lower bound
            return lower
        case _:
            raise TypeError(f"Unknown constraint: {constraint!r}")


def compute_minimal_substitution(constraints: ConstraintSet, goal_type: Type) -> Optional[Dict[str, Type]]:
    """Choose a type for every constrained variable that keeps `goal_type` as small as possible.

    Variables free in `goal_type` without a constraint are treated as
    unconstrained. Returns None when the constraints cannot be satisfied.
    """
    if not are_constraints_satisfiable(constraints):
        return None

    all_constraints = dict(constraints)
    for name in sorted(goal_type.free_vars()):
        all_constraints.setdefault(name, TOP_CONSTRAINT)

    return {
        name: _minimal_type(constraint, variance_for_type_var(name, goal_type))
        for name, constraint in all_constraints.items()
    }
