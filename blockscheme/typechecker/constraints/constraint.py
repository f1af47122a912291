from dataclasses import dataclass
from functools import reduce
from typing import Iterable, Optional, Union

from blockscheme.typechecker.subtyping import is_subtype, type_join, type_meet
from blockscheme.typechecker.types import ANY, NEVER, Type


@dataclass(frozen=True)
class EqualityConstraint:
    """The variable must be exactly `type`"""

    type: Type


@dataclass(frozen=True)
class SubtypeConstraint:
    """The variable must lie between `lower_bound` and `upper_bound`"""

    lower_bound: Type = NEVER
    upper_bound: Type = ANY


@dataclass(frozen=True)
class UntypedConstraint:
    """The variable met an untyped value and takes the gradual type"""


Constraint = Union[EqualityConstraint, SubtypeConstraint, UntypedConstraint]

TOP_CONSTRAINT = SubtypeConstraint(NEVER, ANY)


def is_constraint_satisfiable(constraint: Constraint) -> bool:
    match constraint:
        case EqualityConstraint() | UntypedConstraint():
            return True
        case SubtypeConstraint(lower_bound=lower, upper_bound=upper):
            return is_subtype(lower, upper)
        case _:
            raise TypeError(f"Unknown constraint: {constraint!r}")


def constraint_meet(first: Constraint, second: Constraint) -> Optional[Constraint]:
    """Combine two constraints on the same variable.

    Returns None when no type satisfies both.
    """
    if isinstance(first, UntypedConstraint):
        return first
    if isinstance(second, UntypedConstraint):
        return second
    if isinstance(second, SubtypeConstraint):
        first, second = second, first

    match (first, second):
        case (EqualityConstraint(type=type1), EqualityConstraint(type=type2)):
            return first if type1 == type2 else None
        case (SubtypeConstraint(lower_bound=lower, upper_bound=upper), EqualityConstraint(type=exact)):
            if is_subtype(lower, exact) and is_subtype(exact, upper):
                return second
            return None
        case (SubtypeConstraint(), SubtypeConstraint()):
            met = SubtypeConstraint(
                type_join(first.lower_bound, second.lower_bound),
                type_meet(first.upper_bound, second.upper_bound),
            )
            return met if is_constraint_satisfiable(met) else None
        case _:
            raise TypeError(f"Unknown constraints: {first!r}, {second!r}")


def constraints_meet(constraints: Iterable[Constraint]) -> Optional[Constraint]:
    def step(acc: Optional[Constraint], constraint: Constraint) -> Optional[Constraint]:
        if acc is None:
            return None
        return constraint_meet(acc, constraint)

    return reduce(step, constraints, TOP_CONSTRAINT)
