"""
Reference Index
===============
Groups child records under their legacy parent key (award → product IDs,
product → gallery rows, product → PDF rows, article → boxes, ...).

Every child lands under exactly one parent. Rows whose parent key is missing
are dropped and counted, never merged into another group.
"""

from __future__ import annotations

from collections.abc import Callable, Hashable, Iterable, Iterator
from typing import Any, Generic, TypeVar

from audiofast_migration.logging_config import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

KeyFunc = Callable[[Any], "str | None"]


def _selector(selector: str | Callable[[Any], Any] | None) -> Callable[[Any], Any]:
    if selector is None:
        return lambda row: row
    if callable(selector):
        return selector
    return lambda row: getattr(row, selector, None)


class ReferenceIndex(Generic[T]):
    """Ordered legacy parent key → children mapping, read-only after build."""

    def __init__(self, name: str = "") -> None:
        self.name = name
        self._groups: dict[str, list[T]] = {}
        self._seen: dict[str, set[Hashable]] = {}
        self.dropped = 0
        self.duplicates = 0

    @classmethod
    def build(
        cls,
        rows: Iterable[Any],
        parent_key: str | KeyFunc,
        *,
        child: str | Callable[[Any], Any] | None = None,
        dedupe: Callable[[Any], Hashable] | None = None,
        name: str = "",
    ) -> ReferenceIndex:
        """
        Build an index from relation rows.

        Args:
            rows: source rows, in source order
            parent_key: attribute name (or callable) giving the parent's legacy ID
            child: attribute name (or callable) giving the stored child value;
                the whole row is stored when omitted
            dedupe: optional key function; a second child with the same key
                under the same parent is skipped
            name: label used in log events
        """
        index: ReferenceIndex = cls(name=name)
        get_parent = _selector(parent_key)
        get_child = _selector(child)

        for row in rows:
            parent = get_parent(row)
            parent = str(parent).strip() if parent is not None else ""
            value = get_child(row)
            if not parent or value is None or value == "":
                index.dropped += 1
                continue
            if dedupe is not None:
                marker = dedupe(row)
                seen = index._seen.setdefault(parent, set())
                if marker in seen:
                    index.duplicates += 1
                    continue
                seen.add(marker)
            index._groups.setdefault(parent, []).append(value)

        if index.dropped:
            logger.warning("reference_rows_dropped", index=name, dropped=index.dropped)
        logger.debug(
            "reference_index_built",
            index=name,
            parents=index.populated_count,
            duplicates=index.duplicates,
        )
        return index

    def get(self, key: str | int | None) -> list[T]:
        """Children of *key* in source order; an empty list when there are none."""
        if key is None:
            return []
        return list(self._groups.get(str(key).strip(), []))

    def has_children(self, key: str | int | None) -> bool:
        if key is None:
            return False
        return bool(self._groups.get(str(key).strip()))

    @property
    def populated_count(self) -> int:
        """Number of parents with at least one child."""
        return sum(1 for children in self._groups.values() if children)

    def __contains__(self, key: object) -> bool:
        return self.has_children(key)  # type: ignore[arg-type]

    def __iter__(self) -> Iterator[str]:
        return iter(self._groups)

    def __len__(self) -> int:
        return len(self._groups)
