"""
Profile (kind 0) and menu (kind 30000) document models.

Both documents are replaceable events: only the newest one per author is
current. The models here only convert between Python objects and the JSON
content of those events; fetching and publishing live in
[nostrlivery.services.directory][].
"""

from __future__ import annotations

import uuid
from dataclasses import asdict, dataclass, field
from typing import Any, ClassVar

from ._validation import validate_str_no_null, validate_str_not_empty


@dataclass(frozen=True, slots=True)
class Profile:
    """Kind 0 profile metadata with the app-specific payment fields.

    [Profile.placeholder()][nostrlivery.models.profile.Profile.placeholder]
    is shown by the UI when a profile query yields nothing.
    """

    name: str = ""
    display_name: str = ""
    about: str = ""
    picture: str = ""
    currency: str | None = None
    payment_rate: str | None = None

    _KNOWN: ClassVar[tuple[str, ...]] = (
        "name",
        "display_name",
        "about",
        "picture",
        "currency",
        "payment_rate",
    )

    @classmethod
    def placeholder(cls) -> Profile:
        return cls(
            name="Driver Name",
            display_name="Driver",
            about="Professional delivery driver",
            picture="https://via.placeholder.com/150",
        )

    @classmethod
    def from_content(cls, data: dict[str, Any]) -> Profile:
        """Build a profile from decoded kind 0 content, ignoring unknown or non-string fields."""
        kwargs: dict[str, Any] = {}
        for key in cls._KNOWN:
            value = data.get(key)
            if isinstance(value, (int, float)) and not isinstance(value, bool):
                value = str(value)
            if isinstance(value, str):
                kwargs[key] = value
        return cls(**kwargs)

    def to_content(self) -> dict[str, str]:
        return {k: v for k, v in asdict(self).items() if v}

    @property
    def label(self) -> str:
        """Best human-readable name for display."""
        return self.display_name or self.name or "Unknown Driver"


def _new_item_id() -> str:
    return uuid.uuid4().hex


@dataclass(frozen=True, slots=True)
class MenuItem:
    """One entry of a company menu.

    ``item_id`` is assigned once at creation and travels with the item in
    the published document, so edits and removals never depend on the
    item's position in the list.
    """

    name: str
    price: str = ""
    description: str = ""
    category: str = ""
    image_url: str = ""
    item_id: str = field(default_factory=_new_item_id)

    def __post_init__(self) -> None:
        validate_str_not_empty(self.name, "name")
        validate_str_not_empty(self.item_id, "item_id")
        for name in ("price", "description", "category", "image_url"):
            validate_str_no_null(getattr(self, name), name)

    @classmethod
    def from_content(cls, data: dict[str, Any]) -> MenuItem:
        """Build an item from one entry of the menu document.

        Accepts the capitalized keys written by the company app
        (``"Name"``, ``"Image URL"``...). Entries saved before ids existed
        receive a fresh ``item_id``.
        """
        item_id = data.get("id")
        return cls(
            name=str(data.get("Name", "")),
            price=str(data.get("Price", "")),
            description=str(data.get("Description", "")),
            category=str(data.get("Categories", "")),
            image_url=str(data.get("Image URL", "")),
            item_id=item_id if isinstance(item_id, str) and item_id else _new_item_id(),
        )

    def to_content(self) -> dict[str, str]:
        return {
            "id": self.item_id,
            "Name": self.name,
            "Price": self.price,
            "Description": self.description,
            "Categories": self.category,
            "Image URL": self.image_url,
        }


def group_by_category(items: list[MenuItem]) -> dict[str, list[MenuItem]]:
    """Group menu items by category, preserving item order within each group."""
    groups: dict[str, list[MenuItem]] = {}
    for item in items:
        groups.setdefault(item.category, []).append(item)
    return groups
