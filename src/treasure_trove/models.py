"""
Data model for extracted and stored inventory items.
"""
from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


class Confidence(enum.Enum):
    """Where a candidate item came from."""
    RULE_BASED = "rule-based"
    MODEL_DERIVED = "model-derived"


def _check_name_and_quantity(name: str, quantity: int) -> None:
    if not isinstance(name, str) or not name.strip():
        raise ValueError("Item name must be non-empty text")
    if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity < 1:
        raise ValueError(f"Item quantity must be a positive integer, got: {quantity!r}")


@dataclass
class CandidateItem:
    """An item extracted from free text, before it is stored.

    Candidates never carry container or location references; those are
    attached by the caller when the candidates are stored.
    """
    name: str
    quantity: int = 1
    confidence: Confidence = Confidence.RULE_BASED

    def __post_init__(self):
        _check_name_and_quantity(self.name, self.quantity)

    def to_dict(self) -> dict[str, Any]:
        """Return the form-ready representation used by the web layer."""
        return {
            "name": self.name,
            "quantity": self.quantity,
            "confidence": self.confidence.value,
        }


@dataclass
class Container:
    """A bin, box or shelf that items are put in."""
    name: str
    id: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name}


@dataclass
class Location:
    """A room or area (garage, attic) where containers and items live."""
    name: str
    id: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name}


@dataclass
class Item:
    """A stored inventory item.

    Attributes:
        name: Display name.
        quantity: How many, at least 1.
        id: Identifier assigned by the store (None until stored).
        container_id: Id of the Container the item is in, if any.
        location_id: Id of the Location the item is in, if any.
        created_at: When the item was recorded.
    """
    name: str
    quantity: int = 1
    id: int | None = None
    container_id: int | None = None
    location_id: int | None = None
    created_at: datetime = field(default_factory=datetime.now)

    def __post_init__(self):
        _check_name_and_quantity(self.name, self.quantity)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "quantity": self.quantity,
            "container_id": self.container_id,
            "location_id": self.location_id,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Item:
        created_at = data.get("created_at")
        return cls(
            name=data["name"],
            quantity=int(data.get("quantity", 1)),
            id=data.get("id"),
            container_id=data.get("container_id"),
            location_id=data.get("location_id"),
            created_at=datetime.fromisoformat(created_at) if created_at else datetime.now(),
        )


# A rendered ZPL label for exactly one item
LabelPayload = str


class DispatchState(enum.Enum):
    """States of a print job while it is being dispatched."""
    PENDING = "pending"
    SUBMITTING = "submitting"
    RETRYING = "retrying"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass
class PrintJob:
    """One label on its way to a print queue.

    Only lives for the duration of a single dispatch sequence.
    """
    payload: LabelPayload
    target_queue: str
    attempt_count: int = 0
    last_error: Exception | None = None
    state: DispatchState = DispatchState.PENDING
    job_id: str | None = None
