from __future__ import annotations

from typing import Iterable, Iterator, List, Set


class HeaderSet:
    """Insertion-ordered set of column names."""

    def __init__(self, names: Iterable[str] = ()) -> None:
        self._order: List[str] = []
        self._seen: Set[str] = set()
        self.extend(names)

    def add(self, name: str) -> bool:
        """Append name unless already present. Returns True when it was new."""
        if name in self._seen:
            return False
        self._seen.add(name)
        self._order.append(name)
        return True

    def extend(self, names: Iterable[str]) -> None:
        for name in names:
            self.add(name)

    def as_list(self) -> List[str]:
        return list(self._order)

    def __contains__(self, name: object) -> bool:
        return name in self._seen

    def __iter__(self) -> Iterator[str]:
        return iter(self._order)

    def __len__(self) -> int:
        return len(self._order)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, HeaderSet):
            return self._order == other._order
        if isinstance(other, list):
            return self._order == other
        return NotImplemented

    def __repr__(self) -> str:
        return f"HeaderSet({self._order!r})"
