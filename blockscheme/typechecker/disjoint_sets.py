from dataclasses import dataclass
from typing import Callable, Dict, Generic, Hashable, Iterator, List, Optional, TypeVar

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


@dataclass
class _Node(Generic[K, V]):
    key: K
    value: V
    rank: int = 0
    parent: Optional["_Node[K, V]"] = None


class DisjointSetsMap(Generic[K, V]):
    """Union-find over keys where every class carries one value.

    When two classes are merged, `merge_values` decides the value of the
    merged class from the values of the two original classes.
    """

    def __init__(self, merge_values: Callable[[V, V], V]) -> None:
        self.merge_values = merge_values
        self.nodes: Dict[K, _Node[K, V]] = {}

    def reset(self) -> None:
        self.nodes = {}

    def clone(self) -> "DisjointSetsMap[K, V]":
        """Independent copy; changes to the copy never affect this store"""
        copied: Dict[int, _Node[K, V]] = {
            id(node): _Node(node.key, node.value, node.rank) for node in self.nodes.values()
        }
        for node in self.nodes.values():
            if node.parent is not None:
                copied[id(node)].parent = copied[id(node.parent)]

        result: DisjointSetsMap[K, V] = DisjointSetsMap(self.merge_values)
        result.nodes = {key: copied[id(node)] for key, node in self.nodes.items()}
        return result

    def add_singleton(self, key: K, value: V) -> None:
        self.nodes[key] = _Node(key, value)

    def union(self, key1: K, key2: K) -> None:
        """Merge the classes of two keys"""
        root1 = self._representative(self.nodes[key1])
        root2 = self._representative(self.nodes[key2])
        if root1 is root2:
            return

        merged = self.merge_values(root1.value, root2.value)
        if root1.rank < root2.rank:
            root1, root2 = root2, root1
        root2.parent = root1
        if root1.rank == root2.rank:
            root1.rank += 1
        root1.value = merged

    def value(self, key: K) -> Optional[V]:
        """Value of the class containing `key`, or None for an unknown key"""
        node = self.nodes.get(key)
        if node is None:
            return None
        return self._representative(node).value

    def set_value(self, key: K, value: V) -> None:
        """Replace the value of the class containing `key`"""
        self._representative(self.nodes[key]).value = value

    def same_set(self, key1: K, key2: K) -> bool:
        return self._representative(self.nodes[key1]) is self._representative(self.nodes[key2])

    def values(self) -> List[V]:
        """One value per class"""
        return [node.value for node in self.nodes.values() if node.parent is None]

    def _representative(self, node: _Node[K, V]) -> _Node[K, V]:
        root = node
        while root.parent is not None:
            root = root.parent
        # path compression
        while node.parent is not None and node.parent is not root:
            next_node = node.parent
            node.parent = root
            node = next_node
        return root

    def __contains__(self, key: object) -> bool:
        return key in self.nodes

    def __len__(self) -> int:
        return len(self.nodes)

    def __iter__(self) -> Iterator[K]:
        return iter(self.nodes)
