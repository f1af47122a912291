"""
Bidirectional type checker.

Unlike the unification-based inferrer, the checker trusts annotations,
records errors per tree position and keeps going with the gradual `?` type
wherever a subexpression fails. Holes and unannotated binders are `?` too.
Calls to polymorphic functions are solved with local constraint generation.
"""

import logging
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Set, Tuple, Union

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
from blockscheme.ast.tree import (
    Tree,
    TreeIndexPath,
    extend_index_path,
    get_identifier,
    is_hole,
    root_index_path,
)
from blockscheme.library.prelude import prelude_environment
from blockscheme.typechecker.cache import InferenceCache
from blockscheme.typechecker.constraints.constraint_gen import eliminate_up, generate_constraints
from blockscheme.typechecker.constraints.constraint_set import (
    ConstraintSet,
    compute_minimal_substitution,
    constraint_sets_meet,
)
from blockscheme.typechecker.errors import (
    ArityMismatch,
    DuplicateDefinition,
    InvalidAssignment,
    InvalidAssignmentToType,
    NotCallable,
    TypecheckError,
    TypeInferenceError,
    UnboundVariable,
    VariadicArityMismatch,
)
from blockscheme.typechecker.substitution import type_substitute
from blockscheme.typechecker.subtyping import is_subtype, type_join
from blockscheme.typechecker.types import (
    ANY_TAG,
    BOOLEAN,
    EMPTY,
    FUNCTION_TAG,
    INTEGER,
    NEVER,
    NEVER_TAG,
    NULL,
    NUMBER,
    PROCEDURE_TAG,
    STRING,
    UNTYPED,
    UNTYPED_TAG,
    ConcreteType,
    ForallType,
    Type,
    VariadicFunctionType,
    function_max_arg_count,
    function_min_arg_count,
    function_param_types,
    function_result_type,
    function_type,
    has_tag,
    list_type,
    variadic_param_types,
)

logger = logging.getLogger(__name__)

TypeContext = Dict[str, Type]
ErrorKey = Tuple[str, Tuple[int, ...]]


class ErrorsByIndexPath:
    """At most one error per tree position"""

    def __init__(self) -> None:
        self.errors: Dict[ErrorKey, TypecheckError] = {}

    @staticmethod
    def key(index_path: TreeIndexPath) -> ErrorKey:
        return (index_path.tree.id, index_path.path)

    def clear(self) -> None:
        self.errors = {}

    def add(self, index_path: TreeIndexPath, error: TypecheckError) -> None:
        self.errors[self.key(index_path)] = error

    def get(self, index_path: TreeIndexPath) -> Optional[TypecheckError]:
        return self.errors.get(self.key(index_path))

    def all(self) -> List[TypecheckError]:
        return list(self.errors.values())

    def items(self) -> List[Tuple[ErrorKey, TypecheckError]]:
        return list(self.errors.items())

    def __len__(self) -> int:
        return len(self.errors)


class TypeDefines:
    """Top-level definitions whose types are computed lazily, at most once"""

    def __init__(self) -> None:
        self.defines: Dict[str, Callable[[], Type]] = {}
        self.computed: Dict[str, Type] = {}
        self.computing: Set[str] = set()

    def clear(self) -> None:
        self.defines = {}
        self.clear_computed()

    def clear_computed(self) -> None:
        self.computed = {}
        self.computing = set()

    def add(self, name: str, compute: Callable[[], Type]) -> None:
        self.defines[name] = compute

    def has(self, name: str) -> bool:
        return name in self.defines

    def get(self, name: str) -> Optional[Type]:
        if name not in self.computed:
            if name in self.computing:
                logger.warning("Circular dependency for defined name: %s", name)
                return UNTYPED

            compute = self.defines.get(name)
            if compute is None:
                return None

            self.computing.add(name)
            try:
                self.computed[name] = compute()
            finally:
                self.computing.discard(name)
        return self.computed[name]

    def names(self) -> List[str]:
        return list(self.defines)

    def compute_all(self) -> None:
        for name in self.names():
            self.get(name)


def _binder_annotation(binder: ASTNode) -> Optional[Type]:
    if isinstance(binder, NameBinding):
        return binder.type
    return None


class Typechecker:
    def __init__(self, base_context: Optional[Mapping[str, Type]] = None, auto_reset: bool = False) -> None:
        self.base_context: TypeContext = (
            dict(base_context) if base_context is not None else prelude_environment()
        )
        self.auto_reset = auto_reset
        self.errors = ErrorsByIndexPath()
        self.defines = TypeDefines()
        self.cache = InferenceCache()

    def reset(self) -> None:
        """Forget all errors, definitions and cached types"""
        self.errors.clear()
        self.defines.clear()
        self.cache.clear()

    def clear_cache(self) -> None:
        self.defines.clear_computed()
        self.cache.clear()

    def add_defines(self, trees: Iterable[Tree]) -> None:
        for tree in trees:
            if isinstance(tree.root, Define):
                self.add_define(tree)

    def add_define(self, tree: Tree) -> None:
        define = tree.root
        if not isinstance(define, Define):
            raise TypeInferenceError(f"Not a definition: {define!r}")

        identifier = get_identifier(define.name)
        if not is_hole(define.name) and self.defines.has(identifier):
            self.errors.add(root_index_path(tree), DuplicateDefinition(identifier))

        self._infer_type(define, self.base_context, root_index_path(tree))

    def infer_type(self, tree: Union[Tree, ASTNode], context: Optional[Mapping[str, Type]] = None) -> Type:
        if not isinstance(tree, Tree):
            tree = Tree(tree)
        if self.auto_reset:
            self.reset()
        return self._infer_type(tree.root, self._context(context), root_index_path(tree))

    def infer_subexpr_type(
        self,
        index_path: TreeIndexPath,
        context: Optional[Mapping[str, Type]] = None,
    ) -> Type:
        if self.auto_reset:
            self.reset()

        tree = index_path.tree
        self._infer_type(tree.root, self._context(context), root_index_path(tree))
        # types of definitions are wanted even when nothing refers to them
        self.defines.compute_all()

        inferred = self.cache.get(index_path)
        if inferred is None:
            logger.warning("No type in inference cache for index path %s", index_path.path)
            return UNTYPED
        return inferred

    def _context(self, context: Optional[Mapping[str, Type]]) -> TypeContext:
        return self.base_context if context is None else dict(context)

    def _get(self, name: str, context: TypeContext) -> Optional[Type]:
        if name in context:
            return context[name]
        return self.defines.get(name)

    def _infer_type(self, expr: ASTNode, context: TypeContext, index_path: TreeIndexPath) -> Type:
        cached = self.cache.get(index_path)
        if cached is not None:
            return cached

        try:
            inferred = self._infer_type_(expr, context, index_path)
        except TypeInferenceError as e:
            if e.error is None:
                raise
            self.errors.add(index_path, e.error)
            inferred = UNTYPED

        self.cache.set(index_path, inferred)
        return inferred

    def _infer_type_(self, expr: ASTNode, context: TypeContext, index_path: TreeIndexPath) -> Type:
        match expr:
            case BoolLiteral():
                return BOOLEAN
            case NumberLiteral(value=value):
                return INTEGER if isinstance(value, int) or value.is_integer() else NUMBER
            case StringLiteral():
                return STRING
            case NullLiteral():
                return NULL
            case Hole():
                return UNTYPED
            case ListLiteral(elements=elements):
                element_type: Type = NEVER
                for i, element in enumerate(elements):
                    element_type = type_join(
                        element_type,
                        self._infer_type(element, context, extend_index_path(index_path, i)),
                    )
                return list_type(element_type)
            case Var(name=name) | NameBinding(name=name):
                # for a name binding this only fills the cache
                var_type = self._get(name, context)
                if var_type is None:
                    raise TypeInferenceError(f"Unbound variable: {name}", UnboundVariable(expr))
                return var_type
            case Define():
                return self._infer_define(expr, context, index_path)
            case Lambda():
                return self._infer_lambda(expr, context, index_path)
            case Call():
                return self._infer_call(expr, context, index_path)
            case Let():
                return self._infer_let(expr, context, index_path)
            case Letrec():
                return self._infer_letrec(expr, context, index_path)
            case Sequence(exprs=exprs):
                result: Type = UNTYPED
                for i, sub_expr in enumerate(exprs):
                    result = self._infer_type(sub_expr, context, extend_index_path(index_path, i))
                return result
            case If(condition=condition, consequent=consequent, alternative=alternative):
                self._infer_type(condition, context, extend_index_path(index_path, 0))
                then_type = self._infer_type(consequent, context, extend_index_path(index_path, 1))
                else_type = self._infer_type(alternative, context, extend_index_path(index_path, 2))
                return type_join(then_type, else_type)
            case Cond(cases=cases):
                overall: Type = NEVER
                for i, cond_case in enumerate(cases):
                    self._infer_type(cond_case.condition, context, extend_index_path(index_path, 2 * i))
                    value_type = self._infer_type(cond_case.value, context, extend_index_path(index_path, 2 * i + 1))
                    overall = type_join(overall, value_type)
                return overall
            case _:
                raise TypeInferenceError(f"Unknown expression: {expr!r}")

    def _cache_binding_type(
        self,
        binder: ASTNode,
        context: TypeContext,
        index_path: TreeIndexPath,
        t: Type,
    ) -> None:
        if is_hole(binder):
            self._infer_type(binder, context, index_path)
        else:
            self._infer_type(binder, {**context, get_identifier(binder): t}, index_path)

    def _infer_define(self, define: Define, context: TypeContext, index_path: TreeIndexPath) -> Type:
        if is_hole(define.name):
            self._infer_type(define.value, context, extend_index_path(index_path, 1))
            self._infer_type(define.name, context, extend_index_path(index_path, 0))
            return EMPTY

        annotation = _binder_annotation(define.name)

        def compute() -> Type:
            if annotation is not None:
                self._check_type(define.value, annotation, context, extend_index_path(index_path, 1))
                define_type = annotation
            else:
                define_type = self._infer_type(define.value, context, extend_index_path(index_path, 1))
            self._cache_binding_type(define.name, context, extend_index_path(index_path, 0), define_type)
            return define_type

        self.defines.add(get_identifier(define.name), compute)
        return EMPTY

    def _infer_lambda(self, lambda_: Lambda, context: TypeContext, index_path: TreeIndexPath) -> Type:
        param_types = [_binder_annotation(param) or UNTYPED for param in lambda_.params]
        return self._lambda_type(lambda_, param_types, None, context, index_path)

    def _lambda_type(
        self,
        lambda_: Lambda,
        param_types: List[Type],
        expected_result: Optional[Type],
        context: TypeContext,
        index_path: TreeIndexPath,
    ) -> Type:
        new_context = dict(context)
        for param, param_type in zip(lambda_.params, param_types):
            if not is_hole(param):
                new_context[get_identifier(param)] = param_type

        for i, param in enumerate(lambda_.params):
            self._infer_type(param, new_context, extend_index_path(index_path, i))

        body_path = extend_index_path(index_path, len(lambda_.params))
        if expected_result is None:
            body_type = self._infer_type(lambda_.body, new_context, body_path)
        else:
            body_type = self._infer_against(lambda_.body, expected_result, new_context, body_path)
        return function_type(*param_types, body_type)

    def _check_lambda(
        self,
        lambda_: Lambda,
        expected: ConcreteType,
        context: TypeContext,
        index_path: TreeIndexPath,
    ) -> Type:
        """Type a lambda using the parameter types it is expected to accept"""
        param_types = [
            _binder_annotation(param) or expected_param
            for param, expected_param in zip(lambda_.params, function_param_types(expected))
        ]
        lambda_type = self._lambda_type(
            lambda_,
            param_types,
            function_result_type(expected),
            context,
            index_path,
        )
        self.cache.set(index_path, lambda_type)
        return lambda_type

    def _infer_against(self, expr: ASTNode, expected: Type, context: TypeContext, index_path: TreeIndexPath) -> Type:
        """Infer the type of `expr`, using `expected` to type unannotated lambda parameters"""
        if (
            isinstance(expr, Lambda)
            and has_tag(expected, FUNCTION_TAG)
            and not isinstance(expected, VariadicFunctionType)
            and len(expr.params) == len(function_param_types(expected))
            and self.cache.get(index_path) is None
        ):
            assert isinstance(expected, ConcreteType)
            return self._check_lambda(expr, expected, context, index_path)
        return self._infer_type(expr, context, index_path)

    def _infer_call(self, call: Call, context: TypeContext, index_path: TreeIndexPath) -> Type:
        called_type = self._infer_type(call.called, context, extend_index_path(index_path, 0))

        constrain_var_names: List[str] = []
        while isinstance(called_type, ForallType):
            constrain_var_names += called_type.bound
            called_type = called_type.body

        if has_tag(called_type, PROCEDURE_TAG):
            assert isinstance(called_type, ConcreteType)
            called_type = function_type(*called_type.params)

        arg_count = len(call.args)

        if has_tag(called_type, UNTYPED_TAG):
            for i, arg in enumerate(call.args):
                self._infer_type(arg, context, extend_index_path(index_path, i + 1))
            return UNTYPED

        if has_tag(called_type, ANY_TAG) or has_tag(called_type, NEVER_TAG):
            for i, arg in enumerate(call.args):
                self._infer_type(arg, context, extend_index_path(index_path, i + 1))
            return called_type

        if isinstance(called_type, VariadicFunctionType):
            result_type = function_result_type(called_type)
            if not function_min_arg_count(called_type) <= arg_count <= function_max_arg_count(called_type):
                self.errors.add(
                    index_path,
                    VariadicArityMismatch(
                        call,
                        called_type,
                        called_type.min_arg_count,
                        called_type.max_arg_count,
                        arg_count,
                    ),
                )
                return result_type
            param_types = variadic_param_types(called_type, arg_count)
        elif has_tag(called_type, FUNCTION_TAG):
            assert isinstance(called_type, ConcreteType)
            result_type = function_result_type(called_type)
            param_types = function_param_types(called_type)
            if arg_count != len(param_types):
                self.errors.add(index_path, ArityMismatch(call, called_type, len(param_types), arg_count))
                return result_type
        else:
            raise TypeInferenceError(f"{called_type} is not callable", NotCallable(call, called_type))

        arg_types = []
        for i, (arg, param_type) in enumerate(zip(call.args, param_types)):
            arg_path = extend_index_path(index_path, i + 1)
            if param_type.free_vars() & set(constrain_var_names):
                arg_types.append(self._infer_type(arg, context, arg_path))
            else:
                arg_types.append(self._infer_against(arg, param_type, context, arg_path))

        instantiated = self._infer_result_type(constrain_var_names, call.args, arg_types, param_types, result_type)
        if instantiated is None:
            raise TypeInferenceError("No valid type assignment for call", InvalidAssignment(call))
        return instantiated

    def _infer_result_type(
        self,
        constrain_var_names: List[str],
        args: List[ASTNode],
        arg_types: List[Type],
        param_types: List[Type],
        result_type: Type,
    ) -> Optional[Type]:
        constraint_set = constraint_sets_meet(
            self._generate_constraints(constrain_var_names, args, arg_types, param_types)
        )
        if constraint_set is None:
            return None

        substitution = compute_minimal_substitution(constraint_set, result_type)
        if substitution is None:
            return None

        # variables bound outside this call stay as they are
        substitution = {name: t for name, t in substitution.items() if name in constrain_var_names}
        return eliminate_up(constrain_var_names, type_substitute(result_type, substitution))

    def _generate_constraints(
        self,
        constrain_var_names: List[str],
        args: List[ASTNode],
        arg_types: List[Type],
        param_types: List[Type],
    ) -> List[ConstraintSet]:
        constraint_sets = []
        for arg, arg_type, param_type in zip(args, arg_types, param_types):
            constraints = generate_constraints(constrain_var_names, arg_type, param_type)
            if constraints is None:
                raise TypeInferenceError(
                    f"Argument of type {arg_type} is not assignable to {param_type}",
                    InvalidAssignmentToType(arg, param_type),
                )
            constraint_sets.append(constraints)
        return constraint_sets

    def _infer_let(self, let: Let, context: TypeContext, index_path: TreeIndexPath) -> Type:
        new_context = dict(context)
        for i, binding in enumerate(let.bindings):
            value_path = extend_index_path(index_path, 2 * i + 1)
            annotation = _binder_annotation(binding.name)
            # values see the outer context only
            if annotation is not None:
                self._check_type(binding.value, annotation, context, value_path)
                new_context[get_identifier(binding.name)] = annotation
            else:
                value_type = self._infer_type(binding.value, context, value_path)
                if not is_hole(binding.name):
                    new_context[get_identifier(binding.name)] = value_type

        for i, binding in enumerate(let.bindings):
            self._infer_type(binding.name, new_context, extend_index_path(index_path, 2 * i))
        return self._infer_type(let.body, new_context, extend_index_path(index_path, 2 * len(let.bindings)))

    def _infer_letrec(self, letrec: Letrec, context: TypeContext, index_path: TreeIndexPath) -> Type:
        new_context = dict(context)
        for binding in letrec.bindings:
            if not is_hole(binding.name):
                new_context[get_identifier(binding.name)] = _binder_annotation(binding.name) or UNTYPED

        for i, binding in enumerate(letrec.bindings):
            value_path = extend_index_path(index_path, 2 * i + 1)
            annotation = _binder_annotation(binding.name)
            if annotation is not None:
                self._check_type(binding.value, annotation, new_context, value_path)
            else:
                value_type = self._infer_type(binding.value, new_context, value_path)
                if not is_hole(binding.name):
                    new_context[get_identifier(binding.name)] = value_type

        for i, binding in enumerate(letrec.bindings):
            self._infer_type(binding.name, new_context, extend_index_path(index_path, 2 * i))
        return self._infer_type(letrec.body, new_context, extend_index_path(index_path, 2 * len(letrec.bindings)))

    def _check_type(self, expr: ASTNode, t: Type, context: TypeContext, index_path: TreeIndexPath) -> None:
        """Record an error unless `expr` has type `t` in `context`"""
        if not self._check_type_(expr, t, context, index_path):
            self.errors.add(index_path, InvalidAssignmentToType(expr, t))

    def _check_type_(self, expr: ASTNode, t: Type, context: TypeContext, index_path: TreeIndexPath) -> bool:
        expr_type = self._infer_against(expr, t, context, index_path)
        return is_subtype(expr_type, t)
