"""
Item storage.

A small store for items, containers (bins) and locations, keyed by integer
ids. Items point at containers and locations by id only, so either can be
renamed or removed without touching the items.

:class:`JsonItemStore` keeps everything in memory and, when given a path,
writes the whole store to one JSON file after every change.
"""
from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import Any, Iterable, Protocol

from .models import CandidateItem, Container, Item, Location

logger = logging.getLogger(__name__)

# Bins offered in a fresh store
DEFAULT_BINS = [
    "Spring 1",
    "Spring 2",
    "Autumn",
    "Tapes & Adhesives",
    "Wires & Cables",
]


class ItemStore(Protocol):
    """Storage contract used by the web layer and the CLI."""

    def create(self, item: Item) -> int: ...

    def get(self, item_id: int) -> Item: ...

    def update(self, item: Item) -> None: ...

    def delete(self, item_id: int) -> None: ...

    def list_items(self) -> list[Item]: ...

    def find_by_container(self, container_id: int) -> list[Item]: ...

    def find_by_location(self, location_id: int) -> list[Item]: ...

    def resolve_container(self, name: str) -> int: ...

    def resolve_location(self, name: str) -> int: ...

    def container_name(self, container_id: int | None) -> str | None: ...

    def location_name(self, location_id: int | None) -> str | None: ...

    def list_containers(self) -> list[Container]: ...


def save_json(data: dict[str, Any], output_file: Path) -> None:
    """Save store data to a JSON file, replacing it atomically."""
    output_file.parent.mkdir(parents=True, exist_ok=True)
    tmp_file = output_file.with_suffix(output_file.suffix + ".tmp")
    with open(tmp_file, "w", encoding="utf-8") as f:
        json.dump(data, f, ensure_ascii=False, indent=2)
    tmp_file.replace(output_file)


def load_json(json_file: Path) -> dict[str, Any]:
    """Load store data from a JSON file."""
    with open(json_file, encoding="utf-8") as f:
        return json.load(f)


class JsonItemStore:
    """In-memory item store, optionally persisted to a JSON file."""

    def __init__(self, path: Path | None = None, default_bins: Iterable[str] = DEFAULT_BINS):
        self.path = Path(path) if path else None
        self._lock = threading.Lock()
        self._next_id = 1
        self._items: dict[int, Item] = {}
        self._containers: dict[int, Container] = {}
        self._locations: dict[int, Location] = {}

        if self.path and self.path.exists():
            self._load(load_json(self.path))
            logger.info("Loaded %d items from %s", len(self._items), self.path)
        else:
            for name in default_bins:
                self._add_named(self._containers, Container(name=name))

    def _allocate_id(self) -> int:
        new_id = self._next_id
        self._next_id += 1
        return new_id

    def _add_named(self, table: dict, entity: Container | Location) -> int:
        entity.id = self._allocate_id()
        table[entity.id] = entity
        return entity.id

    def _load(self, data: dict[str, Any]) -> None:
        for entry in data.get("containers", []):
            self._containers[entry["id"]] = Container(name=entry["name"], id=entry["id"])
        for entry in data.get("locations", []):
            self._locations[entry["id"]] = Location(name=entry["name"], id=entry["id"])
        for entry in data.get("items", []):
            item = Item.from_dict(entry)
            self._items[item.id] = item
        used = [0, *self._items, *self._containers, *self._locations]
        self._next_id = max(data.get("next_id", 1), max(used) + 1)

    def _save(self) -> None:
        if not self.path:
            return
        save_json(self.to_dict(), self.path)

    def to_dict(self) -> dict[str, Any]:
        return {
            "next_id": self._next_id,
            "items": [item.to_dict() for item in self._items.values()],
            "containers": [c.to_dict() for c in self._containers.values()],
            "locations": [loc.to_dict() for loc in self._locations.values()],
        }

    # Items

    def create(self, item: Item) -> int:
        """Store a new item and return its id."""
        with self._lock:
            item.id = self._allocate_id()
            self._items[item.id] = item
            self._save()
            return item.id

    def get(self, item_id: int) -> Item:
        """Return the item with this id. Raises KeyError if unknown."""
        return self._items[item_id]

    def update(self, item: Item) -> None:
        with self._lock:
            if item.id not in self._items:
                raise KeyError(item.id)
            self._items[item.id] = item
            self._save()

    def delete(self, item_id: int) -> None:
        with self._lock:
            del self._items[item_id]
            self._save()

    def list_items(self) -> list[Item]:
        return self._snapshot()

    def _snapshot(self) -> list[Item]:
        with self._lock:
            return list(self._items.values())

    def find_by_container(self, container_id: int) -> list[Item]:
        return [item for item in self._snapshot() if item.container_id == container_id]

    def find_by_location(self, location_id: int) -> list[Item]:
        return [item for item in self._snapshot() if item.location_id == location_id]

    # Containers and locations

    @staticmethod
    def _find_by_name(table: dict, name: str) -> int | None:
        wanted = name.strip().lower()
        for entity_id, entity in table.items():
            if entity.name.lower() == wanted:
                return entity_id
        return None

    def resolve_container(self, name: str) -> int:
        """Return the id of the container with this name, creating it if needed."""
        with self._lock:
            existing = self._find_by_name(self._containers, name)
            if existing is not None:
                return existing
            new_id = self._add_named(self._containers, Container(name=name.strip()))
            self._save()
            return new_id

    def resolve_location(self, name: str) -> int:
        """Return the id of the location with this name, creating it if needed."""
        with self._lock:
            existing = self._find_by_name(self._locations, name)
            if existing is not None:
                return existing
            new_id = self._add_named(self._locations, Location(name=name.strip()))
            self._save()
            return new_id

    def container_name(self, container_id: int | None) -> str | None:
        container = self._containers.get(container_id) if container_id is not None else None
        return container.name if container else None

    def location_name(self, location_id: int | None) -> str | None:
        location = self._locations.get(location_id) if location_id is not None else None
        return location.name if location else None

    def list_containers(self) -> list[Container]:
        return list(self._containers.values())


def store_candidates(
    store: ItemStore,
    candidates: Iterable[CandidateItem],
    container: str | None = None,
    location: str | None = None,
) -> list[Item]:
    """Store extracted candidates, all in the same container and location.

    Container and location are free-typed names; they are matched against
    existing ones or created.
    """
    container_id = store.resolve_container(container) if container else None
    location_id = store.resolve_location(location) if location else None

    items = []
    for candidate in candidates:
        item = Item(
            name=candidate.name,
            quantity=candidate.quantity,
            container_id=container_id,
            location_id=location_id,
        )
        store.create(item)
        items.append(item)
    return items


def item_view(store: ItemStore, item: Item) -> dict[str, Any]:
    """Item as a dict with container and location names resolved."""
    data = item.to_dict()
    data["container"] = store.container_name(item.container_id)
    data["location"] = store.location_name(item.location_id)
    return data
