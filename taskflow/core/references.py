"""
Entity references.

A reference to another entity is either a bare identifier or an expanded
entity (an ORM instance, or the dict produced by ``Resolver.expand``).
Equality checks on owners, members, authors and assignees always go
through ``resolve_id`` so callers never branch on which form they hold.

    Reference = int | str | Ref | Expanded | Model | dict
"""

from dataclasses import dataclass
from typing import Any, Union


@dataclass(frozen=True)
class Ref:
    """Bare identifier."""

    id: int


@dataclass(frozen=True)
class Expanded:
    """A fully loaded entity standing in for its identifier."""

    entity: Any

    @property
    def id(self) -> int | None:
        return resolve_id(self.entity)


Reference = Union[int, str, Ref, Expanded, dict, Any]


def resolve_id(ref: Reference) -> int | None:
    """Return the integer id behind any reference form, or None.

    Numeric strings (e.g. a JWT ``sub`` claim or a URL segment) are
    accepted; anything else that cannot be read as an id raises TypeError.
    """
    if ref is None:
        return None
    if isinstance(ref, bool):
        raise TypeError("bool is not a valid reference")
    if isinstance(ref, int):
        return ref
    if isinstance(ref, str):
        try:
            return int(ref.strip())
        except ValueError as exc:
            raise TypeError(f"Not an identifier: {ref!r}") from exc
    if isinstance(ref, (Ref, Expanded)):
        return ref.id
    if isinstance(ref, dict):
        return resolve_id(ref.get("id"))
    if hasattr(ref, "id"):
        return resolve_id(ref.id)
    raise TypeError(f"Unsupported reference type: {type(ref).__name__}")


def same_entity(a: Reference, b: Reference) -> bool:
    """Identifier equality; two missing references are not the same entity."""
    a_id, b_id = resolve_id(a), resolve_id(b)
    return a_id is not None and a_id == b_id
