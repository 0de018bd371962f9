# model.py
from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Dict, Iterable, Iterator, Tuple, Union

from .frontend.images import match_image


class Axis(Mapping):
    """
    One point of the build matrix: an ordered, read-only set of
    name -> value bindings.
    """

    __slots__ = ("_items",)

    def __init__(self, items: Union[Mapping, Iterable[Tuple[str, str]], None] = None):
        pairs = items.items() if isinstance(items, Mapping) else (items or ())
        self._items: Dict[str, str] = {
            str(k): "" if v is None else str(v) for k, v in pairs
        }

    def __getitem__(self, key: str) -> str:
        return self._items[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __hash__(self) -> int:
        return hash(tuple(self._items.items()))

    def __eq__(self, other) -> bool:
        if isinstance(other, Mapping):
            return dict(self._items) == dict(other)
        return NotImplemented

    def __repr__(self) -> str:
        return f"Axis({self._items!r})"

    def __str__(self) -> str:
        # e.g. "GO_VERSION=1.21 REDIS=6"
        return " ".join(f"{k}={v}" for k, v in self._items.items())


@dataclass(frozen=True)
class Secret:
    """
    A sensitive value handed to the compiler.

    `match` optionally restricts the secret to a list of image names;
    an empty list means any image may request it.
    """
    name: str
    value: str
    match: Tuple[str, ...] = field(default_factory=tuple)

    def allowed_for(self, image: str) -> bool:
        if not self.match:
            return True
        return match_image(image, *self.match)
