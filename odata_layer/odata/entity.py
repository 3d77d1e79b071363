"""
odata_layer.odata.entity - Normalized entity model
==================================================

Both response dialects (V2 and V4) are normalized into these classes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Union

UNKNOWN_TYPE = "Unknown"

EntityId = Union[str, int, None]


class NavigationKind(str, Enum):
    NONE = "none"
    ENTITY = "entity"
    COLLECTION = "collection"


@dataclass(frozen=True)
class NavigationLink:
    """
    Value of a navigation property: nothing loaded, one entity, or a collection.

    Attributes
    ----------
    kind : NavigationKind
        Which of the three shapes this link holds
    target : Entity, EntityCollection or None
        The loaded data (None for ``NavigationKind.NONE``)
    """
    kind: NavigationKind
    target: Union["Entity", "EntityCollection", None] = None

    @classmethod
    def wrap(cls, value: Union["Entity", "EntityCollection", "NavigationLink", None]) -> "NavigationLink":
        if isinstance(value, NavigationLink):
            return value
        if value is None:
            return cls(NavigationKind.NONE)
        if isinstance(value, Entity):
            return cls(NavigationKind.ENTITY, value)
        if isinstance(value, EntityCollection):
            return cls(NavigationKind.COLLECTION, value)
        raise TypeError(f"Navigation value must be Entity, EntityCollection or None, got {type(value).__name__}")

    @property
    def is_loaded(self) -> bool:
        return self.kind is not NavigationKind.NONE


@dataclass
class Entity:
    """
    One OData resource instance.

    Parameters
    ----------
    entity_type : str
        Simple type name; "Unknown" when it could not be inferred
    properties : dict
        Property name -> value, in wire order
    id : str or int, optional
        Server-assigned key, once known
    etag : str, optional
        Concurrency token
    is_new : bool, optional
        Defaults to True when neither ``id`` nor ``etag`` is set

    Notes
    -----
    ``is_new`` only changes through ``mark_as_persisted``; setting
    properties never flips it.
    """
    entity_type: str = UNKNOWN_TYPE
    properties: Dict[str, Any] = field(default_factory=dict)
    id: EntityId = None
    etag: Optional[str] = None
    is_new: Optional[bool] = None
    navigation_properties: Dict[str, NavigationLink] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.is_new is None:
            self.is_new = self.id is None and self.etag is None
        self.navigation_properties = {
            name: NavigationLink.wrap(value) for name, value in self.navigation_properties.items()
        }

    # ---------------- properties ----------------

    def get_property(self, name: str, default: Any = None) -> Any:
        return self.properties.get(name, default)

    def set_property(self, name: str, value: Any) -> "Entity":
        self.properties[name] = value
        return self

    def __getitem__(self, name: str) -> Any:
        return self.properties[name]

    def __contains__(self, name: object) -> bool:
        return name in self.properties

    # ---------------- navigation ----------------

    def get_navigation_property(self, name: str) -> Union["Entity", "EntityCollection", None]:
        """Return the loaded target, or None when absent or not expanded."""
        link = self.navigation_properties.get(name)
        return link.target if link is not None else None

    def navigation_link(self, name: str) -> NavigationLink:
        return self.navigation_properties.get(name, NavigationLink(NavigationKind.NONE))

    def set_navigation_property(
        self,
        name: str,
        value: Union["Entity", "EntityCollection", NavigationLink, None],
    ) -> "Entity":
        self.navigation_properties[name] = NavigationLink.wrap(value)
        return self

    # ---------------- persistence ----------------

    def set_etag(self, etag: Optional[str]) -> "Entity":
        self.etag = etag
        return self

    def mark_as_persisted(self, id: EntityId = None, etag: Optional[str] = None) -> "Entity":
        """
        Record a successful write.

        The id is only replaced when one is given; the eTag is always
        replaced and ``is_new`` becomes False.
        """
        if id is not None:
            self.id = id
        self.etag = etag
        self.is_new = False
        return self

    def to_dict(self) -> Dict[str, Any]:
        """Flat properties only; navigation targets are not exported."""
        return dict(self.properties)


class EntityCollection:
    """
    Ordered entities plus server paging metadata.

    ``total_count`` is what the server reported for the whole result set
    and is independent of ``count()``, which is the number of items held.
    """

    def __init__(
        self,
        items: Optional[List[Entity]] = None,
        total_count: Optional[int] = None,
        next_link: Optional[str] = None,
        delta_link: Optional[str] = None,
    ) -> None:
        self._items: List[Entity] = list(items or [])
        self.total_count = total_count
        self.next_link = next_link
        self.delta_link = delta_link

    def add(self, entity: Entity) -> "EntityCollection":
        self._items.append(entity)
        return self

    def remove(self, entity: Entity) -> "EntityCollection":
        """Remove every reference to this exact instance."""
        self._items = [e for e in self._items if e is not entity]
        return self

    def all(self) -> List[Entity]:
        return list(self._items)

    def first(self) -> Optional[Entity]:
        return self._items[0] if self._items else None

    def last(self) -> Optional[Entity]:
        return self._items[-1] if self._items else None

    def count(self) -> int:
        return len(self._items)

    def is_empty(self) -> bool:
        return not self._items

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[Entity]:
        return iter(list(self._items))

    def __getitem__(self, index: int) -> Entity:
        return self._items[index]

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, EntityCollection):
            return NotImplemented
        return (
            self._items == other._items
            and self.total_count == other.total_count
            and self.next_link == other.next_link
            and self.delta_link == other.delta_link
        )

    def __repr__(self) -> str:
        return (
            f"EntityCollection(count={len(self._items)}, total_count={self.total_count!r}, "
            f"next_link={self.next_link!r})"
        )
