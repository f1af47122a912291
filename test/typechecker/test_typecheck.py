import logging
from typing import List, Mapping, Optional

import pytest

from blockscheme.ast.tree import Tree, TreeIndexPath
from blockscheme.parser.parser import parse_expr, parse_program
from blockscheme.typechecker.errors import (
    ArityMismatch,
    DuplicateDefinition,
    InvalidAssignment,
    InvalidAssignmentToType,
    NotCallable,
    TypeInferenceError,
    UnboundVariable,
    VariadicArityMismatch,
)
from blockscheme.typechecker.parse import parse_type
from blockscheme.typechecker.serialize import serialize_type
from blockscheme.typechecker.typecheck import Typechecker
from blockscheme.typechecker.types import INTEGER, NEVER, STRING, Type

CONST_42 = "(lambda () 42)"
INT_IDENTITY = "(lambda ((x : Integer)) x)"
NUMBER_IDENTITY = "(lambda ((x : Number)) x)"
INT_STRING_FIRST = "(lambda ((x : Integer) (y : String)) x)"
INT_STRING_SECOND = "(lambda ((x : Integer) (y : String)) y)"
CALL_INT_TO_NUMBER = "(lambda ((f : (Function Integer Number)) (x : Integer)) (f x))"
UNCALLABLE = "(lambda ((x : Never)) x)"


@pytest.fixture
def checker() -> Typechecker:
    return Typechecker(auto_reset=True)


def _infer(checker: Typechecker, text: str, context: Optional[Mapping[str, Type]] = None) -> str:
    return serialize_type(checker.infer_type(parse_expr(text), context))


def _error_tags(checker: Typechecker) -> List[str]:
    return [error.tag for error in checker.errors.all()]


@pytest.mark.parametrize(
    "text, expected",
    [
        ("42", "Integer"),
        ("4.2", "Number"),
        ("-" + "9" * 400, "Integer"),
        ("#t", "Boolean"),
        ('"hello"', "String"),
        ("(sequence 0 #f)", "Boolean"),
        (CONST_42, "(Function Integer)"),
        (INT_IDENTITY, "(Function Integer Integer)"),
        (NUMBER_IDENTITY, "(Function Number Number)"),
        (INT_STRING_FIRST, "(Function Integer String Integer)"),
        (INT_STRING_SECOND, "(Function Integer String String)"),
        (CALL_INT_TO_NUMBER, "(Function (Function Integer Number) Integer Number)"),
        (UNCALLABLE, "(Function Never Never)"),
        ("(lambda (x) x)", "(Function ? ?)"),
        ("(lambda (f) (f 1))", "(Function ? ?)"),
    ],
)
def test_infers_without_errors(checker: Typechecker, text: str, expected: str) -> None:
    assert _infer(checker, text) == expected
    assert _error_tags(checker) == []


@pytest.mark.parametrize(
    "text, expected",
    [
        (f"({CONST_42})", "Integer"),
        (f"({INT_IDENTITY} 42)", "Integer"),
        (f"({NUMBER_IDENTITY} 42)", "Number"),
        (f'({INT_STRING_FIRST} 42 "foo")', "Integer"),
        (f'({INT_STRING_SECOND} 42 "foo")', "String"),
        (f"({CALL_INT_TO_NUMBER} (lambda (x) x) 42)", "Number"),
        ("(if #t 1 2.5)", "Number"),
        ('(if #t 1 "one")', "Any"),
        ('(cond (#t 1) (#f 2.5))', "Number"),
        ("(let ((x 1)) (+ x 2))", "Number"),
        ("(letrec (((f : (Function Integer Integer)) (lambda (n) (f n)))) (f 1))", "Integer"),
    ],
)
def test_infers_calls_and_control_flow(checker: Typechecker, text: str, expected: str) -> None:
    assert _infer(checker, text) == expected
    assert _error_tags(checker) == []


def test_variable_from_context(checker: Typechecker) -> None:
    assert checker.infer_type(parse_expr("x"), {"x": INTEGER}) == INTEGER
    assert _error_tags(checker) == []


def test_unbound_variable(checker: Typechecker) -> None:
    checker.infer_type(parse_expr("x"), {})
    assert _error_tags(checker) == ["UnboundVariable"]
    assert isinstance(checker.errors.all()[0], UnboundVariable)


def test_never_callee(checker: Typechecker) -> None:
    assert checker.infer_type(parse_expr("(loop 42)"), {"loop": NEVER}) == NEVER
    assert _error_tags(checker) == []


@pytest.mark.parametrize(
    "text, error_type",
    [
        (f"({CONST_42} 42)", ArityMismatch),
        (f"({NUMBER_IDENTITY})", ArityMismatch),
        (f"({INT_IDENTITY} 4.2)", InvalidAssignmentToType),
        (f'({NUMBER_IDENTITY} "foo")', InvalidAssignmentToType),
        (
            "((lambda ((foo : (Function (Function Integer Number) Integer Boolean))) foo)"
            f" {CALL_INT_TO_NUMBER})",
            InvalidAssignmentToType,
        ),
        (f"({UNCALLABLE} 42)", InvalidAssignmentToType),
        ("(1 2)", NotCallable),
        ("(-)", VariadicArityMismatch),
        ('(+ 1 "s")', InvalidAssignmentToType),
    ],
)
def test_call_errors(checker: Typechecker, text: str, error_type: type) -> None:
    tree = Tree(parse_expr(text))
    checker.infer_type(tree)
    assert isinstance(checker.errors.get(TreeIndexPath(tree, ())), error_type)


def test_unsatisfiable_call_is_an_invalid_assignment(checker: Typechecker) -> None:
    context = {"pick": parse_type("(All (#a) (Function #a (Function #a Boolean) #a))")}
    checker.infer_type(parse_expr('(pick "s" (lambda ((x : Integer)) #t))'), context)
    assert _error_tags(checker) == ["InvalidAssignment"]
    assert isinstance(checker.errors.all()[0], InvalidAssignment)


@pytest.mark.parametrize(
    "text, expected",
    [
        ("'(42 24)", "(List Integer)"),
        ("'(42 2.4)", "(List Number)"),
        ("'(42 #t)", "(List Any)"),
        ("(list '(42) '(#t))", "(List (List Any))"),
    ],
)
def test_list_types(checker: Typechecker, text: str, expected: str) -> None:
    assert _infer(checker, text) == expected
    assert _error_tags(checker) == []


@pytest.mark.parametrize(
    "text, expected",
    [
        ("(cons 1 '())", "(List Integer)"),
        ("(list 1 2.5)", "(List Number)"),
        ("(filter (lambda ((n : Integer)) (> n 1)) '(1 2 3))", "(List Integer)"),
        ("(map (lambda ((n : Integer)) (number->string n)) '(1 2))", "(List String)"),
        ("(car '(\"a\"))", "String"),
        ("(+ 1 2)", "Number"),
    ],
)
def test_polymorphic_prelude_calls(checker: Typechecker, text: str, expected: str) -> None:
    assert _infer(checker, text) == expected
    assert _error_tags(checker) == []


def test_variadic_function_as_argument(checker: Typechecker) -> None:
    _infer(checker, "(map - '(1 2))")
    assert _error_tags(checker) == []


def test_holes_are_untyped(checker: Typechecker) -> None:
    assert _infer(checker, "(+ _ 1)") == "Number"
    assert _infer(checker, "(car _)") == "?"
    assert _error_tags(checker) == []


def test_errors_are_kept_per_position(checker: Typechecker) -> None:
    tree = Tree(parse_expr('(sequence (1 2) (x) "ok")'))
    assert checker.infer_type(tree) == STRING
    assert isinstance(checker.errors.get(TreeIndexPath(tree, (0,))), NotCallable)
    assert isinstance(checker.errors.get(TreeIndexPath(tree, (1, 0))), UnboundVariable)
    assert len(checker.errors) == 2


def test_annotated_let_is_checked(checker: Typechecker) -> None:
    tree = Tree(parse_expr("(let (((x : String) 1)) x)"))
    assert checker.infer_type(tree) == STRING
    error = checker.errors.get(TreeIndexPath(tree, (1,)))
    assert isinstance(error, InvalidAssignmentToType)
    assert error.type == STRING


def test_defines_are_visible_to_other_trees() -> None:
    checker = Typechecker()
    trees = parse_program("(define inc (lambda ((n : Number)) (+ n 1)))\n(inc 2)")
    checker.add_defines(trees)
    assert serialize_type(checker.infer_subexpr_type(TreeIndexPath(trees[1], ()))) == "Number"
    assert serialize_type(checker.infer_subexpr_type(TreeIndexPath(trees[0], (1,)))) == "(Function Number Number)"
    assert serialize_type(checker.infer_subexpr_type(TreeIndexPath(trees[0], ()))) == "Empty"
    assert len(checker.errors) == 0


def test_annotated_define_types_lambda_parameters() -> None:
    checker = Typechecker()
    trees = parse_program("(define (f : (Function Number Number)) (lambda (n) (+ n 1)))")
    checker.add_defines(trees)
    assert serialize_type(checker.infer_subexpr_type(TreeIndexPath(trees[0], (1, 0)))) == "Number"
    assert len(checker.errors) == 0


def test_annotated_define_mismatch() -> None:
    checker = Typechecker()
    trees = parse_program("(define (x : String) 1)")
    checker.add_defines(trees)
    checker.defines.compute_all()
    error = checker.errors.get(TreeIndexPath(trees[0], (1,)))
    assert isinstance(error, InvalidAssignmentToType)
    assert error.type == STRING


def test_duplicate_definition() -> None:
    checker = Typechecker()
    trees = parse_program("(define x 1)\n(define x 2)")
    checker.add_defines(trees)
    assert checker.errors.get(TreeIndexPath(trees[0], ())) is None
    error = checker.errors.get(TreeIndexPath(trees[1], ()))
    assert error == DuplicateDefinition("x")


def test_circular_defines(caplog: pytest.LogCaptureFixture) -> None:
    checker = Typechecker()
    trees = parse_program("(define a b)\n(define b a)")
    checker.add_defines(trees)
    with caplog.at_level(logging.WARNING):
        inferred = checker.infer_subexpr_type(TreeIndexPath(trees[0], (1,)))
    assert serialize_type(inferred) == "?"
    assert "Circular dependency" in caplog.text


def test_missing_path_is_untyped(caplog: pytest.LogCaptureFixture) -> None:
    checker = Typechecker()
    tree = Tree(parse_expr("(f 1)"))
    with caplog.at_level(logging.WARNING):
        inferred = checker.infer_subexpr_type(TreeIndexPath(tree, (7,)), {"f": parse_type("(Function Integer Integer)")})
    assert serialize_type(inferred) == "?"
    assert "No type in inference cache" in caplog.text


def test_add_define_rejects_other_forms() -> None:
    with pytest.raises(TypeInferenceError):
        Typechecker().add_define(Tree(parse_expr("1")))


def test_reset_forgets_errors_and_defines() -> None:
    checker = Typechecker()
    checker.add_defines(parse_program("(define x y)"))
    checker.defines.compute_all()
    assert len(checker.errors) == 1
    checker.reset()
    assert len(checker.errors) == 0
    assert checker.defines.names() == []
