from typing import Dict, Optional, Tuple

from blockscheme.ast.tree import TreeIndexPath
from blockscheme.typechecker.types import Type

CacheKey = Tuple[str, int, Tuple[int, ...]]


class InferenceCache:
    """Type computed for each tree position.

    Entries are keyed by tree id, tree revision and child index path, so an
    edit to a tree makes its old entries unreachable.
    """

    def __init__(self) -> None:
        self.inferred: Dict[CacheKey, Type] = {}

    @staticmethod
    def key(index_path: TreeIndexPath) -> CacheKey:
        tree = index_path.tree
        return (tree.id, tree.revision, index_path.path)

    def get(self, index_path: TreeIndexPath) -> Optional[Type]:
        return self.inferred.get(self.key(index_path))

    def set(self, index_path: TreeIndexPath, t: Type) -> None:
        self.inferred[self.key(index_path)] = t

    def clear(self) -> None:
        self.inferred = {}

    def __len__(self) -> int:
        return len(self.inferred)
