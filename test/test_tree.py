import pytest

from blockscheme.ast.nodes import Hole, NumberLiteral, StringLiteral, Var
from blockscheme.ast.tree import (
    Tree,
    TreeIndexPath,
    child_at_index,
    children,
    extend_index_path,
    get_identifier,
    is_ancestor,
    is_same_or_ancestor,
    node_at_index_path,
    replace_at_index_path,
    root_index_path,
    set_child_at_index,
)
from blockscheme.parser.parser import parse_expr
from blockscheme.typechecker.cache import InferenceCache
from blockscheme.typechecker.types import INTEGER


def test_children_follow_source_order() -> None:
    let = parse_expr("(let ((x 1) (y 2)) x)")
    assert [type(child).__name__ for child in children(let)] == [
        "NameBinding",
        "NumberLiteral",
        "NameBinding",
        "NumberLiteral",
        "Var",
    ]
    cond = parse_expr('(cond (#t 1) (#f "s"))')
    assert children(cond)[3] == StringLiteral("s")
    assert child_at_index(cond, 4) is None


def test_node_at_index_path() -> None:
    tree = Tree(parse_expr("(f (g 1) 2)"))
    assert node_at_index_path(TreeIndexPath(tree, (1, 1))) == NumberLiteral(1)
    assert node_at_index_path(root_index_path(tree)) is tree.root
    # a missing final child reads as a hole
    assert node_at_index_path(TreeIndexPath(tree, (5,))) == Hole()
    with pytest.raises(ValueError):
        node_at_index_path(TreeIndexPath(tree, (5, 0)))


def test_set_child_at_index() -> None:
    lambda_ = parse_expr("(lambda (x y) x)")
    set_child_at_index(lambda_, 2, Var("y"))
    set_child_at_index(lambda_, 0, Hole())
    assert lambda_ == parse_expr("(lambda (_ y) y)")
    with pytest.raises(IndexError):
        set_child_at_index(lambda_, 3, Var("z"))


def test_replace_bumps_revision() -> None:
    tree = Tree(parse_expr("(if #t 1 2)"))
    replace_at_index_path(TreeIndexPath(tree, (2,)), NumberLiteral(3))
    assert tree.root == parse_expr("(if #t 1 3)")
    assert tree.revision == 1
    replace_at_index_path(root_index_path(tree), Var("x"))
    assert tree.root == Var("x")
    assert tree.revision == 2


def test_index_path_relations() -> None:
    tree = Tree(Var("x"))
    root = root_index_path(tree)
    child = extend_index_path(root, 1)
    assert child.path == (1,)
    assert is_ancestor(root, child)
    assert not is_ancestor(child, root)
    assert not is_ancestor(root, root)
    assert is_same_or_ancestor(root, root)
    assert not is_ancestor(root, TreeIndexPath(Tree(Var("x")), (1,)))


def test_get_identifier() -> None:
    assert get_identifier(parse_expr("(lambda (x) x)").params[0]) == "x"
    assert get_identifier(Hole()) == "·"
    with pytest.raises(ValueError):
        get_identifier(Var("x"))


def test_cache_entries_expire_with_the_revision() -> None:
    tree = Tree(parse_expr("(f 1)"))
    cache = InferenceCache()
    path = TreeIndexPath(tree, (1,))
    cache.set(path, INTEGER)
    assert cache.get(path) == INTEGER

    replace_at_index_path(path, NumberLiteral(2))
    assert cache.get(path) is None
    assert cache.get(TreeIndexPath(Tree(tree.root), (1,))) is None
