"""Dependency set container."""

from collections.abc import Iterable, Iterator


class DependencySet:
    """Deduplicated package names, ordered by first occurrence.

    Equality is set equality: two sets holding the same names in a
    different discovery order compare equal.
    """

    __slots__ = ("_names",)

    def __init__(self, names: Iterable[str] = ()) -> None:
        self._names: dict[str, None] = {}
        for name in names:
            self.add(name)

    def add(self, name: str) -> None:
        """Add a name; repeats and empty names are ignored."""
        if name:
            self._names.setdefault(name, None)

    def to_list(self) -> list[str]:
        """Names in first-occurrence order."""
        return list(self._names)

    def __iter__(self) -> Iterator[str]:
        return iter(self._names)

    def __len__(self) -> int:
        return len(self._names)

    def __contains__(self, name: object) -> bool:
        return name in self._names

    def __eq__(self, other: object) -> bool:
        if isinstance(other, DependencySet):
            return self._names.keys() == other._names.keys()
        if isinstance(other, (set, frozenset)):
            return self._names.keys() == other
        return NotImplemented

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return f"DependencySet({self.to_list()!r})"
