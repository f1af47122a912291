"""
Local type inference by unification.

Types of subexpressions are solved with a union-find store of unknowns,
let-bound values are generalized, and every result is generalized into
type variables before it is handed back.
"""

import dataclasses
import logging
from typing import Callable, Dict, ItemsView, List, Mapping, Optional, Set, Tuple, Union

from blockscheme.ast.nodes import (
    ASTNode,
    BoolLiteral,
    Call,
    Cond,
    Define,
    Hole,
    If,
    Lambda,
    Let,
    Letrec,
    ListLiteral,
    NameBinding,
    NullLiteral,
    NumberLiteral,
    Sequence,
    StringLiteral,
    Var,
)
from blockscheme.ast.serialize import serialize_expr
from blockscheme.ast.tree import (
    Tree,
    TreeIndexPath,
    extend_index_path,
    get_identifier,
    is_hole,
    root_index_path,
)
from blockscheme.typechecker.cache import InferenceCache
from blockscheme.typechecker.disjoint_sets import DisjointSetsMap
from blockscheme.typechecker.errors import (
    ArityMismatch,
    InferenceError,
    NotCallable,
    OccursCheckFailure,
    TypeInferenceError,
    TypeMismatch,
    UnboundVariable,
    VariadicArityMismatch,
)
from blockscheme.typechecker.types import (
    ANY,
    ANY_TAG,
    BOOLEAN,
    FUNCTION_TAG,
    INTEGER,
    NEVER,
    NEVER_TAG,
    NULL,
    NUMBER,
    STRING,
    UNTYPED_TAG,
    ConcreteType,
    ForallType,
    Type,
    TypeVar,
    TypeVarNameGenerator,
    Unknown,
    VariadicFunctionType,
    curry_function_type,
    function_max_arg_count,
    function_min_arg_count,
    function_result_type,
    function_type,
    has_no_unknown,
    has_tag,
    list_type,
    procedure_type,
    type_param_map,
    variadic_param_types,
)

logger = logging.getLogger(__name__)

TypeBindings = Dict[str, Type]
UnificationStore = DisjointSetsMap[str, Type]


class TypeEnvironment:
    def __init__(self, bindings: Optional[Mapping[str, Type]] = None) -> None:
        self.bindings: TypeBindings = dict(bindings) if bindings else {}

    def lookup(self, name: str) -> Optional[Type]:
        return self.bindings.get(name)

    def extend(self, name: str, t: Type) -> "TypeEnvironment":
        new_bindings = self.bindings.copy()
        new_bindings[name] = t
        return TypeEnvironment(new_bindings)

    def extend_many(self, new_bindings: Mapping[str, Type]) -> "TypeEnvironment":
        combined_bindings = self.bindings.copy()
        combined_bindings.update(new_bindings)
        return TypeEnvironment(combined_bindings)

    def map_types(self, fn: Callable[[Type], Type]) -> "TypeEnvironment":
        return TypeEnvironment({name: fn(t) for name, t in self.bindings.items()})

    def free_type_vars(self) -> Set[str]:
        free_vars: Set[str] = set()
        for t in self.bindings.values():
            free_vars.update(t.free_vars())
        return free_vars

    def items(self) -> ItemsView[str, Type]:
        return self.bindings.items()

    def __contains__(self, name: str) -> bool:
        return name in self.bindings

    def __getitem__(self, name: str) -> Type:
        return self.bindings[name]


Environment = Union[TypeEnvironment, Mapping[str, Type], None]


def as_environment(env: Environment) -> TypeEnvironment:
    if isinstance(env, TypeEnvironment):
        return env
    return TypeEnvironment(env)


def _prefer_resolved(first: Type, second: Type) -> Type:
    """Value of a merged class: a solved type wins over an unknown"""
    if isinstance(first, Unknown) and not isinstance(second, Unknown):
        return second
    return first


def _unknowns_in(t: Type) -> Set[str]:
    match t:
        case Unknown(id=unknown_id):
            return {unknown_id}
        case TypeVar():
            return set()
        case ForallType(body=body):
            return _unknowns_in(body)
        case ConcreteType(params=params):
            result: Set[str] = set()
            for param in params:
                result |= _unknowns_in(param)
            return result
        case _:
            raise TypeInferenceError(f"Unknown type: {t!r}")


class TypeInferrer:
    def __init__(self) -> None:
        self.error: Optional[InferenceError] = None
        self.cache = InferenceCache()
        self.unifications: UnificationStore = DisjointSetsMap(_prefer_resolved)
        self.unknown_counter = 0

    def reset(self) -> None:
        self.error = None
        self.cache.clear()
        self.unifications.reset()
        self.unknown_counter = 0

    def infer(self, tree: Union[Tree, ASTNode], env: Environment = None) -> Type:
        """Infer the generalized type of a whole expression tree"""
        if not isinstance(tree, Tree):
            tree = Tree(tree)
        type_env = as_environment(env)
        self.reset()

        logger.debug("Inferring %s", serialize_expr(tree.root))
        inferred = self._infer(tree.root, type_env, root_index_path(tree))
        generalized, _ = self.generalize(inferred, type_env)
        self._ensure_complete(generalized)
        logger.debug("Inferred %s", generalized)
        return generalized

    def infer_subexpr(self, index_path: TreeIndexPath, env: Environment = None) -> Type:
        """Type of the subexpression at `index_path`, named consistently with the whole tree's type"""
        tree = index_path.tree
        type_env = as_environment(env)
        self.reset()

        logger.debug("Inferring %s at %s", serialize_expr(tree.root), index_path.path)
        root_type = self._infer(tree.root, type_env, root_index_path(tree))
        _, naming = self.generalize(root_type, type_env)

        inferred = self.cache.get(index_path)
        if inferred is None:
            raise TypeInferenceError(f"Index path not valid for tree: {index_path.path}")

        generalized, _ = self.generalize(inferred, type_env, naming)
        self._ensure_complete(generalized)
        return generalized

    def _ensure_complete(self, t: Type) -> None:
        if not has_no_unknown(t):
            raise TypeInferenceError(f"Type could not be completely inferred: {t}")

    def _fail(self, error: InferenceError, message: str) -> TypeInferenceError:
        self.error = error
        return TypeInferenceError(message, error)

    def new_unknown(self, prefix: str = "") -> Unknown:
        self.unknown_counter += 1
        unknown = Unknown(f"{prefix}#{self.unknown_counter}")
        self.unifications.add_singleton(unknown.id, unknown)
        return unknown

    # Unification

    def substitute(self, t: Type, store: Optional[UnificationStore] = None) -> Type:
        """Replace every solved unknown in `t` by its solution"""
        store = self.unifications if store is None else store
        match t:
            case Unknown(id=unknown_id):
                resolved = store.value(unknown_id)
                if resolved is None or resolved == t:
                    return t
                return self.substitute(resolved, store)
            case _:
                return type_param_map(t, lambda param: self.substitute(param, store))

    def _resolve(self, t: Type) -> Type:
        """Follow unknowns to their class value without rewriting parameters"""
        while isinstance(t, Unknown):
            resolved = self.unifications.value(t.id)
            if resolved is None or resolved == t:
                return t
            t = resolved
        return t

    def _occurs(self, unknown: Unknown, t: Type) -> bool:
        return unknown.id in _unknowns_in(t)

    def unify(
        self,
        t1: Type,
        t2: Type,
        e1: Optional[ASTNode] = None,
        e2: Optional[ASTNode] = None,
    ) -> Type:
        """Make two types equal, returning the unified type.

        `e1` and `e2` are the expressions the types belong to and only feed
        error records.
        """
        if self.substitute(t1) == self.substitute(t2):
            return self.substitute(t1)

        r1, r2 = self._resolve(t1), self._resolve(t2)
        if isinstance(r2, Unknown) and not isinstance(r1, Unknown):
            t1, t2, r1, r2 = t2, t1, r2, r1

        if isinstance(r1, Unknown):
            solution = self.substitute(r2)
            if self._occurs(r1, solution):
                raise self._fail(
                    OccursCheckFailure(e1, e2, r1, solution),
                    f"Occurs check failed: {r1} occurs in {solution}",
                )
            if isinstance(r2, Unknown):
                self.unifications.union(r1.id, r2.id)
            else:
                self.unifications.set_value(r1.id, r2)
            logger.debug("Unified %s with %s", r1, solution)
            return solution

        for resolved in (r1, r2):
            if not isinstance(resolved, ConcreteType):
                raise TypeInferenceError(f"Cannot unify uninstantiated type {resolved}")
        assert isinstance(r1, ConcreteType) and isinstance(r2, ConcreteType)

        if has_tag(r1, ANY_TAG) or has_tag(r1, UNTYPED_TAG):
            return self.substitute(r2)
        if has_tag(r2, ANY_TAG) or has_tag(r2, UNTYPED_TAG):
            return self.substitute(r1)

        unified: Type
        if {r1.tag, r2.tag} == {INTEGER.tag, NUMBER.tag} and not r1.params and not r2.params:
            unified = INTEGER
        elif (
            r1.tag != r2.tag
            or len(r1.params) != len(r2.params)
            or isinstance(r1, VariadicFunctionType) != isinstance(r2, VariadicFunctionType)
        ):
            raise self._fail(
                TypeMismatch(e1, e2, self.substitute(t1), self.substitute(t2)),
                f"Cannot unify {self.substitute(t1)} and {self.substitute(t2)}",
            )
        else:
            params = tuple(self.unify(p1, p2, e1, e2) for p1, p2 in zip(r1.params, r2.params))
            unified = dataclasses.replace(r1, params=params)

        # numeric promotion rewrites the solution of the unknowns involved
        for original in (t1, t2):
            if isinstance(original, Unknown):
                self.unifications.set_value(original.id, unified)
        return self.substitute(unified)

    # Generalization and instantiation

    def generalize(
        self,
        t: Type,
        env: TypeEnvironment,
        naming: Optional[UnificationStore] = None,
    ) -> Tuple[Type, UnificationStore]:
        """Replace the unknowns left in `t` by type variables.

        Names are recorded in `naming`, a private copy of the unification
        store, so a later call given the same copy reuses them. Unknowns that
        also occur in `env` are left alone.
        """
        if naming is None:
            naming = self.unifications.clone()

        env_types = env.map_types(lambda env_type: self.substitute(env_type, naming))
        fixed: Set[str] = set()
        for _, env_type in env_types.items():
            fixed |= _unknowns_in(env_type)

        avoid = env_types.free_type_vars() | t.free_vars()
        for value in naming.values():
            avoid |= value.free_vars()
        names = TypeVarNameGenerator(avoid)

        def recur(current: Type) -> Type:
            match current:
                case Unknown(id=unknown_id):
                    if unknown_id in fixed:
                        return current
                    named = naming.value(unknown_id)
                    if isinstance(named, TypeVar):
                        return named
                    var = TypeVar(names.fresh())
                    naming.set_value(unknown_id, var)
                    return var
                case _:
                    return type_param_map(current, recur)

        generalized = recur(self.substitute(t, naming))
        logger.debug("Generalized %s to %s", t, generalized)
        return generalized, naming

    def instantiate(self, t: Type, instances: Optional[Dict[str, Type]] = None) -> Type:
        """Replace type variables by fresh unknowns, one per name.

        Quantifiers are dropped and n-ary function types are curried.
        """
        if instances is None:
            instances = {}
        match t:
            case Unknown():
                return t
            case TypeVar(name=name):
                if name not in instances:
                    instances[name] = self.new_unknown(name)
                return instances[name]
            case ForallType(body=body):
                return self.instantiate(body, instances)
            case _:
                return type_param_map(curry_function_type(t), lambda param: self.instantiate(param, instances))

    # Inference rules

    def _infer(self, expr: ASTNode, env: TypeEnvironment, index_path: TreeIndexPath) -> Type:
        cached = self.cache.get(index_path)
        if cached is not None:
            return cached

        inferred = self._infer_node(expr, env, index_path)
        self.cache.set(index_path, inferred)
        return inferred

    def _infer_node(self, expr: ASTNode, env: TypeEnvironment, index_path: TreeIndexPath) -> Type:
        match expr:
            case Hole():
                return self.new_unknown("_")
            case NumberLiteral(value=value):
                return INTEGER if isinstance(value, int) or value.is_integer() else NUMBER
            case BoolLiteral():
                return BOOLEAN
            case StringLiteral():
                return STRING
            case NullLiteral():
                return NULL
            case ListLiteral(elements=elements):
                return self._infer_list(elements, env, index_path)
            case Var(name=name) | NameBinding(name=name):
                bound = env.lookup(name)
                if bound is None:
                    raise self._fail(UnboundVariable(expr), f"Unbound variable: {name}")
                return self.instantiate(bound)
            case Call():
                return self._infer_call(expr, env, index_path)
            case Define():
                return self._infer_define(expr, env, index_path)
            case Let():
                return self._infer_let(expr, env, index_path)
            case Letrec():
                return self._infer_letrec(expr, env, index_path)
            case Lambda():
                return self._infer_lambda(expr, env, index_path)
            case Sequence(exprs=exprs):
                result: Type = self.new_unknown("EmptySequence")
                for i, sub_expr in enumerate(exprs):
                    result = self._infer(sub_expr, env, extend_index_path(index_path, i))
                return result
            case If(condition=condition, consequent=consequent, alternative=alternative):
                self._infer(condition, env, extend_index_path(index_path, 0))
                then_type = self._infer(consequent, env, extend_index_path(index_path, 1))
                else_type = self._infer(alternative, env, extend_index_path(index_path, 2))
                return self.unify(then_type, else_type, consequent, alternative)
            case Cond(cases=cases):
                overall: Type = self.new_unknown("Cond")
                for i, cond_case in enumerate(cases):
                    self._infer(cond_case.condition, env, extend_index_path(index_path, 2 * i))
                    value_type = self._infer(cond_case.value, env, extend_index_path(index_path, 2 * i + 1))
                    overall = self.unify(overall, value_type, expr, cond_case.value)
                return overall
            case _:
                raise TypeInferenceError(f"Unknown expression: {expr!r}")

    def _infer_list(self, elements: List[ASTNode], env: TypeEnvironment, index_path: TreeIndexPath) -> Type:
        element_type: Type = self.new_unknown("Element")
        first: Optional[ASTNode] = None
        for i, element in enumerate(elements):
            inferred = self._infer(element, env, extend_index_path(index_path, i))
            element_type = self.unify(element_type, inferred, first, element)
            if first is None:
                first = element
        return list_type(element_type)

    def _binder_type(self, binder: ASTNode, prefix: str) -> Type:
        if isinstance(binder, NameBinding) and binder.type is not None:
            return self.instantiate(binder.type)
        return self.new_unknown(prefix)

    def _infer_call(self, call: Call, env: TypeEnvironment, index_path: TreeIndexPath) -> Type:
        called_type = self.substitute(self._infer(call.called, env, extend_index_path(index_path, 0)))
        arg_count = len(call.args)
        prefix = call.called.name if isinstance(call.called, Var) else "Anonymous"

        def infer_args() -> None:
            for i, arg in enumerate(call.args):
                self._infer(arg, env, extend_index_path(index_path, i + 1))

        match called_type:
            case Unknown() if arg_count == 0:
                result: Type = self.new_unknown(prefix)
                self.unify(called_type, procedure_type(result), call.called, call)
                return self.substitute(result)
            case ConcreteType(tag="Procedure", params=(procedure_result,)):
                if arg_count > 0:
                    raise self._fail(
                        ArityMismatch(call, called_type, 0, arg_count),
                        f"Procedure called with {arg_count} arguments",
                    )
                return procedure_result
            case VariadicFunctionType():
                min_args = function_min_arg_count(called_type)
                max_args = function_max_arg_count(called_type)
                if not min_args <= arg_count <= max_args:
                    raise self._fail(
                        VariadicArityMismatch(
                            call,
                            called_type,
                            called_type.min_arg_count,
                            called_type.max_arg_count,
                            arg_count,
                        ),
                        f"Variadic function called with {arg_count} arguments",
                    )
                result = function_result_type(called_type)
                for param in reversed(variadic_param_types(called_type, arg_count)):
                    result = function_type(param, result)
                if arg_count == 0:
                    return result
                called_type = result
            case ConcreteType(tag="Any"):
                infer_args()
                return ANY
            case ConcreteType(tag="Never"):
                infer_args()
                return NEVER
            case ConcreteType(tag=tag) if tag != FUNCTION_TAG:
                raise self._fail(NotCallable(call, called_type), f"{called_type} is not callable")

        if arg_count == 0:
            raise self._fail(
                ArityMismatch(call, called_type, 1, 0),
                f"Function of type {called_type} called without arguments",
            )

        # each argument consumes the outermost parameter of the curried chain
        result_type: Type = called_type
        for i, arg in enumerate(call.args):
            current = self.substitute(result_type)
            if has_tag(current, ANY_TAG) or has_tag(current, NEVER_TAG):
                for j in range(i, arg_count):
                    self._infer(call.args[j], env, extend_index_path(index_path, j + 1))
                return current
            if isinstance(current, ConcreteType) and current.tag != FUNCTION_TAG:
                raise self._fail(
                    ArityMismatch(call, called_type, i, arg_count),
                    f"Function of type {called_type} called with {arg_count} arguments",
                )
            arg_type = self._infer(arg, env, extend_index_path(index_path, i + 1))
            next_result = self.new_unknown(prefix)
            self.unify(result_type, function_type(arg_type, next_result), call.called, arg)
            result_type = self.substitute(next_result)
        return result_type

    def _infer_define(self, define: Define, env: TypeEnvironment, index_path: TreeIndexPath) -> Type:
        identifier = get_identifier(define.name)
        define_type = self._binder_type(define.name, identifier)
        new_env = env if is_hole(define.name) else env.extend(identifier, define_type)

        inferred = self._infer(define.value, new_env, extend_index_path(index_path, 1))
        inferred = self.unify(define_type, inferred, define.name, define.value)
        self._infer(define.name, new_env, extend_index_path(index_path, 0))
        return inferred

    def _infer_let(self, let: Let, env: TypeEnvironment, index_path: TreeIndexPath) -> Type:
        new_bindings: TypeBindings = {}
        for i, binding in enumerate(let.bindings):
            value_type = self._infer(binding.value, env, extend_index_path(index_path, 2 * i + 1))
            if isinstance(binding.name, NameBinding) and binding.name.type is not None:
                value_type = self.unify(
                    self.instantiate(binding.name.type), value_type, binding.name, binding.value
                )
            if not is_hole(binding.name):
                new_bindings[get_identifier(binding.name)], _ = self.generalize(value_type, env)

        new_env = env.extend_many(new_bindings)
        for i, binding in enumerate(let.bindings):
            self._infer(binding.name, new_env, extend_index_path(index_path, 2 * i))
        return self._infer(let.body, new_env, extend_index_path(index_path, 2 * len(let.bindings)))

    def _infer_letrec(self, letrec: Letrec, env: TypeEnvironment, index_path: TreeIndexPath) -> Type:
        recursive_types: TypeBindings = {}
        for binding in letrec.bindings:
            if not is_hole(binding.name):
                identifier = get_identifier(binding.name)
                recursive_types[identifier] = self._binder_type(binding.name, identifier)
        recursive_env = env.extend_many(recursive_types)

        for i, binding in enumerate(letrec.bindings):
            value_type = self._infer(binding.value, recursive_env, extend_index_path(index_path, 2 * i + 1))
            if not is_hole(binding.name):
                self.unify(
                    recursive_types[get_identifier(binding.name)],
                    value_type,
                    binding.name,
                    binding.value,
                )

        new_bindings = {name: self.generalize(t, env)[0] for name, t in recursive_types.items()}
        new_env = env.extend_many(new_bindings)
        for i, binding in enumerate(letrec.bindings):
            self._infer(binding.name, new_env, extend_index_path(index_path, 2 * i))
        return self._infer(letrec.body, new_env, extend_index_path(index_path, 2 * len(letrec.bindings)))

    def _infer_lambda(self, lambda_: Lambda, env: TypeEnvironment, index_path: TreeIndexPath) -> Type:
        param_types: List[Type] = []
        new_bindings: TypeBindings = {}
        for param in lambda_.params:
            identifier = get_identifier(param)
            param_type = self._binder_type(param, identifier)
            param_types.append(param_type)
            if not is_hole(param):
                new_bindings[identifier] = param_type
        new_env = env.extend_many(new_bindings)

        for i, param in enumerate(lambda_.params):
            self._infer(param, new_env, extend_index_path(index_path, i))
        body_type = self._infer(lambda_.body, new_env, extend_index_path(index_path, len(lambda_.params)))

        if not param_types:
            return procedure_type(body_type)
        result = body_type
        for param_type in reversed(param_types):
            result = function_type(param_type, result)
        return result
