from typing import Mapping, Optional

import pytest

from blockscheme.ast.nodes import NumberLiteral
from blockscheme.ast.tree import Tree, TreeIndexPath, replace_at_index_path
from blockscheme.library.prelude import prelude_environment
from blockscheme.parser.parser import parse_expr
from blockscheme.typechecker.errors import (
    ArityMismatch,
    NotCallable,
    OccursCheckFailure,
    TypeInferenceError,
    TypeMismatch,
    UnboundVariable,
    VariadicArityMismatch,
)
from blockscheme.typechecker.infer import TypeInferrer
from blockscheme.typechecker.parse import parse_type
from blockscheme.typechecker.serialize import serialize_type
from blockscheme.typechecker.types import (
    INTEGER,
    NUMBER,
    STRING,
    Type,
    TypeVar,
    function_type,
    has_no_unknown,
    list_type,
)


def _infer(text: str, env: Optional[Mapping[str, Type]] = None) -> str:
    return serialize_type(TypeInferrer().infer(parse_expr(text), env))


def _infer_error(text: str, env: Optional[Mapping[str, Type]] = None) -> object:
    inferrer = TypeInferrer()
    with pytest.raises(TypeInferenceError) as exc_info:
        inferrer.infer(parse_expr(text), env)
    assert inferrer.error is exc_info.value.error
    return exc_info.value.error


@pytest.mark.parametrize(
    "text, expected",
    [
        ("42", "Integer"),
        ("4.2", "Number"),
        ("4.0", "Integer"),
        ("1" + "0" * 400, "Integer"),
        ("1e400", "Number"),
        ("#t", "Boolean"),
        ("#false", "Boolean"),
        ('"hello"', "String"),
        ("'()", "Null"),
    ],
)
def test_literals(text: str, expected: str) -> None:
    assert _infer(text) == expected


@pytest.mark.parametrize(
    "text, expected",
    [
        ("(lambda (x) x)", "(Function #a #a)"),
        ('((lambda (x y) y) 0 "s")', "String"),
        ("(sequence 0 #f)", "Boolean"),
        ("(lambda () 1)", "(Procedure Integer)"),
        ("((lambda () 1))", "Integer"),
        ("(lambda (f) (f))", "(Function (Procedure #a) #a)"),
        ("(lambda (f x) (f x))", "(Function (Function #a #b) (Function #a #b))"),
        ("(lambda (x) _)", "(Function #a #b)"),
        ("_", "#a"),
        ("(if #t 1 2)", "Integer"),
        ("(cond (#t 1) (#f 2))", "Integer"),
        ("'(1 2 3)", "(List Integer)"),
        ("(let ((id (lambda (x) x))) (sequence (id 1) (id \"s\")))", "String"),
        ("(let ((x 1) (y \"s\")) y)", "String"),
        ("(letrec ((loop (lambda (n) (loop n)))) loop)", "(Function #a #b)"),
        ("(define id (lambda (x) x))", "(Function #a #a)"),
        ("(lambda ((x : Integer)) x)", "(Function Integer Integer)"),
        ("(let (((x : Number) 1)) x)", "Integer"),
    ],
)
def test_inferred_types(text: str, expected: str) -> None:
    assert _infer(text) == expected


def test_prelude_types() -> None:
    env = prelude_environment()
    assert _infer("(+ 1 2)", env) == "Number"
    assert _infer("(cons 1 (list 2))", env) == "(List Integer)"
    assert _infer("(map (lambda (s) (string-length s)) (list \"a\" \"b\"))", env) == "(List Integer)"
    assert _infer("(lambda (x) (+ x 1))", env) == "(Function Number Number)"
    assert _infer("car", env) == "(Function (List #a) #a)"


def test_environment_types_are_instantiated_per_use() -> None:
    env = {"id": parse_type("(All (#a) (Function #a #a))")}
    assert _infer('(sequence (id 1) (id "s"))', env) == "String"


def test_generalized_names_avoid_environment_variables() -> None:
    env = {"y": TypeVar("a")}
    assert _infer("(lambda (x) x)", env) == "(Function #b #b)"


def test_infer_is_idempotent() -> None:
    inferrer = TypeInferrer()
    tree = Tree(parse_expr("(lambda (f x) (f (f x)))"))
    first = inferrer.infer(tree, prelude_environment())
    second = inferrer.infer(tree, prelude_environment())
    assert first == second
    assert has_no_unknown(first)


def test_unbound_variable() -> None:
    error = _infer_error("x")
    assert isinstance(error, UnboundVariable)
    assert error.var.name == "x"


def test_let_is_not_recursive() -> None:
    error = _infer_error("(let ((f (lambda (x) (f x)))) f)")
    assert isinstance(error, UnboundVariable)


@pytest.mark.parametrize(
    "text, error_type",
    [
        ('(if #t 1 "s")', TypeMismatch),
        ("'(1 \"a\")", TypeMismatch),
        ('(define (x : String) 1)', TypeMismatch),
        ("(lambda (f) (f f))", OccursCheckFailure),
        ("(1 2)", NotCallable),
        ("((lambda () 1) 2)", ArityMismatch),
        ("((lambda (x) x))", ArityMismatch),
        ("((lambda (x) x) 1 2)", ArityMismatch),
    ],
)
def test_inference_errors(text: str, error_type: type) -> None:
    assert isinstance(_infer_error(text), error_type)


def test_variadic_arity() -> None:
    env = prelude_environment()
    error = _infer_error("(-)", env)
    assert isinstance(error, VariadicArityMismatch)
    assert error.min_arity == 1
    assert error.attempted_call_arity == 0
    assert _infer("(- 1)", env) == "Number"


def test_variadic_value_does_not_unify_with_function() -> None:
    error = _infer_error("(map - '(1 2))", prelude_environment())
    assert isinstance(error, TypeMismatch)
    assert "(Function* :min 1 Number Number)" in (serialize_type(error.t1), serialize_type(error.t2))


def test_error_is_cleared_by_next_call() -> None:
    inferrer = TypeInferrer()
    with pytest.raises(TypeInferenceError):
        inferrer.infer(parse_expr("x"))
    assert inferrer.error is not None
    inferrer.infer(parse_expr("1"))
    assert inferrer.error is None


@pytest.mark.parametrize("depth", [1, 2, 3])
def test_occurs_check_at_any_depth(depth: int) -> None:
    inferrer = TypeInferrer()
    unknown = inferrer.new_unknown("u")
    t: Type = unknown
    for _ in range(depth):
        t = function_type(INTEGER, list_type(t))
    with pytest.raises(TypeInferenceError) as exc_info:
        inferrer.unify(unknown, t)
    assert isinstance(exc_info.value.error, OccursCheckFailure)


def test_unify_promotes_numbers_without_mutating_types() -> None:
    inferrer = TypeInferrer()
    unknown = inferrer.new_unknown("n")
    assert inferrer.unify(unknown, NUMBER) == NUMBER
    assert inferrer.unify(unknown, INTEGER) == INTEGER
    assert inferrer.substitute(unknown) == INTEGER
    assert NUMBER.tag == "Number"


def test_unify_structural() -> None:
    inferrer = TypeInferrer()
    a, b = inferrer.new_unknown("a"), inferrer.new_unknown("b")
    unified = inferrer.unify(function_type(a, STRING), function_type(INTEGER, b))
    assert unified == function_type(INTEGER, STRING)
    assert inferrer.substitute(a) == INTEGER
    assert inferrer.substitute(b) == STRING


def test_unify_rejects_type_variables() -> None:
    inferrer = TypeInferrer()
    with pytest.raises(TypeInferenceError) as exc_info:
        inferrer.unify(TypeVar("a"), INTEGER)
    assert exc_info.value.error is None


def test_infer_subexpr_names_match_the_root() -> None:
    tree = Tree(parse_expr("(lambda (x) x)"))
    inferrer = TypeInferrer()
    assert serialize_type(inferrer.infer_subexpr(TreeIndexPath(tree, ()))) == "(Function #a #a)"
    assert serialize_type(inferrer.infer_subexpr(TreeIndexPath(tree, (0,)))) == "#a"
    assert serialize_type(inferrer.infer_subexpr(TreeIndexPath(tree, (1,)))) == "#a"


def test_infer_subexpr_sees_the_whole_tree() -> None:
    tree = Tree(parse_expr("((lambda (x) x) 1)"))
    inferred = TypeInferrer().infer_subexpr(TreeIndexPath(tree, (0,)))
    assert serialize_type(inferred) == "(Function Integer Integer)"


def test_infer_subexpr_rejects_missing_paths() -> None:
    tree = Tree(parse_expr("(lambda (x) x)"))
    with pytest.raises(TypeInferenceError):
        TypeInferrer().infer_subexpr(TreeIndexPath(tree, (5,)))


def test_edits_are_seen_by_the_next_inference() -> None:
    tree = Tree(parse_expr("(lambda (x) x)"))
    inferrer = TypeInferrer()
    assert serialize_type(inferrer.infer(tree)) == "(Function #a #a)"

    replace_at_index_path(TreeIndexPath(tree, (1,)), NumberLiteral(1))
    assert serialize_type(inferrer.infer(tree)) == "(Function #a Integer)"
    assert serialize_type(inferrer.infer_subexpr(TreeIndexPath(tree, (1,)))) == "Integer"
