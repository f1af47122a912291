"""
Expression trees addressed by child index paths.

Every node's children are numbered in source order:

- call: called, then arguments
- define: name, value
- let/letrec: name0, value0, name1, value1, ..., body
- lambda: params..., body
- sequence: expressions
- if: condition, consequent, alternative
- cond: condition0, value0, condition1, value1, ...
- list literal: elements
"""

import itertools
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from blockscheme.ast.nodes import (
    ASTNode,
    Call,
    Cond,
    Define,
    Expr,
    Hole,
    If,
    Lambda,
    Let,
    Letrec,
    ListLiteral,
    NameBinding,
    Sequence,
)

_tree_ids = itertools.count(1)

HOLE_IDENTIFIER = "·"


@dataclass(eq=False)
class Tree:
    """Root expression plus identity and a revision stamp bumped on every edit"""

    root: Expr
    id: str = field(default_factory=lambda: f"tree{next(_tree_ids)}")
    revision: int = 0


@dataclass(frozen=True)
class TreeIndexPath:
    tree: Tree
    path: Tuple[int, ...] = ()


def root_index_path(tree: Tree) -> TreeIndexPath:
    return TreeIndexPath(tree, ())


def extend_index_path(index_path: TreeIndexPath, index: int) -> TreeIndexPath:
    return TreeIndexPath(index_path.tree, index_path.path + (index,))


def is_ancestor(ancestor: TreeIndexPath, descendant: TreeIndexPath) -> bool:
    return (
        ancestor.tree is descendant.tree
        and len(ancestor.path) < len(descendant.path)
        and descendant.path[: len(ancestor.path)] == ancestor.path
    )


def is_same_or_ancestor(ancestor: TreeIndexPath, descendant: TreeIndexPath) -> bool:
    return ancestor == descendant or is_ancestor(ancestor, descendant)


def is_hole(node: ASTNode) -> bool:
    return isinstance(node, Hole)


def get_identifier(binder: ASTNode) -> str:
    match binder:
        case NameBinding(name=name):
            return name
        case Hole():
            return HOLE_IDENTIFIER
        case _:
            raise ValueError(f"Not a binder: {binder!r}")


def children(node: ASTNode) -> List[ASTNode]:
    match node:
        case Call(called=called, args=args):
            return [called, *args]
        case Define(name=name, value=value):
            return [name, value]
        case Let(bindings=bindings, body=body) | Letrec(bindings=bindings, body=body):
            result: List[ASTNode] = []
            for binding in bindings:
                result += [binding.name, binding.value]
            return result + [body]
        case Lambda(params=params, body=body):
            return [*params, body]
        case Sequence(exprs=exprs):
            return list(exprs)
        case If(condition=condition, consequent=consequent, alternative=alternative):
            return [condition, consequent, alternative]
        case Cond(cases=cases):
            result = []
            for cond_case in cases:
                result += [cond_case.condition, cond_case.value]
            return result
        case ListLiteral(elements=elements):
            return list(elements)
        case _:
            return []


def child_at_index(node: ASTNode, index: int) -> Optional[ASTNode]:
    nodes = children(node)
    if 0 <= index < len(nodes):
        return nodes[index]
    return None


def set_child_at_index(node: ASTNode, index: int, child: ASTNode) -> None:
    """Replace a child in place; raises IndexError if the slot does not exist"""
    if child_at_index(node, index) is None:
        raise IndexError(f"No child {index} in {type(node).__name__}")

    match node:
        case Call():
            if index == 0:
                node.called = child
            else:
                node.args[index - 1] = child
        case Define():
            if index == 0:
                node.name = child
            else:
                node.value = child
        case Let() | Letrec():
            if index == 2 * len(node.bindings):
                node.body = child
            elif index % 2 == 0:
                node.bindings[index // 2].name = child
            else:
                node.bindings[index // 2].value = child
        case Lambda():
            if index == len(node.params):
                node.body = child
            else:
                node.params[index] = child
        case Sequence():
            node.exprs[index] = child
        case If():
            setattr(node, ("condition", "consequent", "alternative")[index], child)
        case Cond():
            cond_case = node.cases[index // 2]
            if index % 2 == 0:
                cond_case.condition = child
            else:
                cond_case.value = child
        case ListLiteral():
            node.elements[index] = child


def node_at_index_path(index_path: TreeIndexPath) -> ASTNode:
    """Node at the given path.

    A missing final child reads as a hole; a missing intermediate node is an
    invalid path.
    """
    node: ASTNode = index_path.tree.root
    for depth, index in enumerate(index_path.path):
        child = child_at_index(node, index)
        if child is None:
            if depth == len(index_path.path) - 1:
                return Hole()
            raise ValueError(f"Invalid index path for tree: {index_path.path}")
        node = child
    return node


def replace_at_index_path(index_path: TreeIndexPath, node: Expr) -> None:
    """Replace the node at a path and bump the tree revision"""
    tree = index_path.tree
    if not index_path.path:
        tree.root = node
    else:
        parent = node_at_index_path(TreeIndexPath(tree, index_path.path[:-1]))
        set_child_at_index(parent, index_path.path[-1], node)
    tree.revision += 1
