"""
Disjoint Set

Union-find over integer node indices.

A fresh set is built for every resolution pass, so it never has to
support removal. Representatives and members are always returned in
sorted order so that everything built on top of them is reproducible.
"""

from typing import Dict, Iterable, List


class DisjointSet:
    """Union-find keyed by node index, with path compression and union by rank."""

    def __init__(self, items: Iterable[int] = ()):
        self._parent: Dict[int, int] = {}
        self._rank: Dict[int, int] = {}
        for item in items:
            self.insert(item)

    def insert(self, item: int):
        """Add ``item`` as a singleton set (no-op if already present)."""
        if item not in self._parent:
            self._parent[item] = item
            self._rank[item] = 0

    def find(self, item: int) -> int:
        """Return the representative of the set containing ``item``."""
        root = self._parent[item]
        while root != self._parent[root]:
            root = self._parent[root]

        # Path compression
        while item != root:
            next_item = self._parent[item]
            self._parent[item] = root
            item = next_item

        return root

    def create_union(self, a: int, b: int):
        """Merge the sets containing ``a`` and ``b``."""
        root_a = self.find(a)
        root_b = self.find(b)
        if root_a == root_b:
            return

        if self._rank[root_a] < self._rank[root_b]:
            root_a, root_b = root_b, root_a
        self._parent[root_b] = root_a
        if self._rank[root_a] == self._rank[root_b]:
            self._rank[root_a] += 1

    def get_representatives(self) -> List[int]:
        """
        Get one representative per set.

        Returns:
            Representatives ordered by the smallest member of their set
        """
        smallest: Dict[int, int] = {}
        for item in self._parent:
            root = self.find(item)
            if root not in smallest or item < smallest[root]:
                smallest[root] = item
        return sorted(smallest, key=smallest.get)

    def get_members(self, representative: int) -> List[int]:
        """Get the sorted members of the set owned by ``representative``."""
        root = self.find(representative)
        return sorted(item for item in self._parent if self.find(item) == root)

    def __contains__(self, item) -> bool:
        return item in self._parent

    def __len__(self) -> int:
        return len(self._parent)

    def __repr__(self):
        return f"DisjointSet(items={len(self._parent)}, sets={len(self.get_representatives())})"
