"""Memory of the shops touched by the most recent cart mutation."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping


@dataclass(frozen=True, slots=True)
class CartActionRecord:
    function_name: str
    arguments: Mapping[str, Any]
    shop_ids: tuple[str, ...]


class CartActionMemory:
    """Read/replace store. A new record always replaces the previous one."""

    def __init__(self) -> None:
        self._record: CartActionRecord | None = None

    @property
    def record(self) -> CartActionRecord | None:
        return self._record

    @property
    def shop_ids(self) -> tuple[str, ...]:
        return self._record.shop_ids if self._record else ()

    def replace(self, record: CartActionRecord) -> None:
        self._record = record

    def clear(self) -> None:
        self._record = None
