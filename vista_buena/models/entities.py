"""Dataclass entity representations and their stored JSON shape."""

from __future__ import annotations

import re
from dataclasses import asdict, dataclass, fields
from datetime import date, datetime, time, timezone
from typing import Any, ClassVar, Mapping, TypeVar

from ..data_access.errors import ValidationError

ROLES = ("resident", "maintenance", "admin")
RESOURCE_TYPES = ("salon", "gym", "pool", "court")
RESERVATION_STATUSES = ("pending", "approved", "rejected", "completed")
ACTIVE_STATUSES = frozenset({"pending", "approved"})

# fromisoformat also takes "20240601" and "10" on newer interpreters
DATE_FORMAT = re.compile(r"[0-9]{4}-[0-9]{2}-[0-9]{2}")
TIME_FORMAT = re.compile(r"[0-9]{2}:[0-9]{2}")

E = TypeVar("E", bound="Entity")


def _require_text(entity: "Entity", attr: str, allow_blank: bool = False) -> None:
    value = getattr(entity, attr)
    if not isinstance(value, str):
        raise ValidationError(f"{attr} must be a string.", record_id=entity.id)
    if not allow_blank and not value.strip():
        raise ValidationError(f"{attr} must not be blank.", record_id=entity.id)


def _require_choice(entity: "Entity", attr: str, choices: tuple[str, ...]) -> None:
    value = getattr(entity, attr)
    if value not in choices:
        raise ValidationError(
            f"Unsupported {attr} '{value}' (expected one of {', '.join(choices)}).",
            record_id=entity.id,
        )


def _require_count(entity: "Entity", attr: str) -> None:
    value = getattr(entity, attr)
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{attr} must be an integer.", record_id=entity.id)
    if value < 0:
        raise ValidationError(f"{attr} must not be negative.", record_id=entity.id)


def parse_date(value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        message = f"Invalid date '{value}' (expected YYYY-MM-DD)."
        if not DATE_FORMAT.fullmatch(value):
            raise ValidationError(message)
        try:
            return date.fromisoformat(value)
        except ValueError as exc:
            raise ValidationError(message) from exc
    raise ValidationError(f"Invalid date {value!r}.")


def parse_time(value: Any) -> time:
    if isinstance(value, str):
        message = f"Invalid time '{value}' (expected HH:MM)."
        if not TIME_FORMAT.fullmatch(value):
            raise ValidationError(message)
        try:
            value = time.fromisoformat(value)
        except ValueError as exc:
            raise ValidationError(message) from exc
    if not isinstance(value, time):
        raise ValidationError(f"Invalid time {value!r}.")
    if value.second or value.microsecond or value.tzinfo is not None:
        raise ValidationError(f"Time '{value}' must be a plain wall-clock HH:MM value.")
    return value


def parse_timestamp(value: Any) -> datetime:
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError as exc:
            raise ValidationError(f"Invalid timestamp '{value}'.") from exc
    if not isinstance(value, datetime):
        raise ValidationError(f"Invalid timestamp {value!r}.")
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def format_timestamp(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Entity:
    """Shared behaviour for stored records.

    ``WIRE_NAMES`` maps attribute names to the camelCase keys used in the
    persisted JSON; attributes not listed are stored under their own name.
    """

    WIRE_NAMES: ClassVar[dict[str, str]] = {}

    id: str

    @classmethod
    def attribute_names(cls) -> tuple[str, ...]:
        return tuple(f.name for f in fields(cls))  # type: ignore[arg-type]

    @classmethod
    def wire_name(cls, attr: str) -> str:
        return cls.WIRE_NAMES.get(attr, attr)

    @classmethod
    def normalize(cls, values: Mapping[str, Any]) -> dict[str, Any]:
        """Translate wire or attribute keys to attribute names, rejecting unknown keys."""

        by_wire = {cls.wire_name(attr): attr for attr in cls.attribute_names()}
        known = set(cls.attribute_names())
        normalized: dict[str, Any] = {}
        for key, value in values.items():
            attr = key if key in known else by_wire.get(key)
            if attr is None:
                raise ValidationError(f"Unknown field '{key}' for {cls.__name__}.")
            normalized[attr] = value
        return normalized

    @classmethod
    def build(cls: type[E], values: Mapping[str, Any]) -> E:
        """Construct a validated entity from attribute-keyed values."""

        missing = [attr for attr in cls.attribute_names() if attr not in values]
        if missing:
            wire = ", ".join(cls.wire_name(attr) for attr in missing)
            raise ValidationError(f"Missing required field(s) for {cls.__name__}: {wire}.")
        return cls(**values)  # type: ignore[call-arg]

    @classmethod
    def from_record(cls: type[E], record: Mapping[str, Any]) -> E:
        if not isinstance(record, Mapping):
            raise ValidationError(f"Expected an object for {cls.__name__}, got {type(record).__name__}.")
        return cls.build(cls.normalize(record))

    def to_record(self) -> dict[str, Any]:
        return {self.wire_name(attr): self._serialize(attr, value) for attr, value in asdict(self).items()}

    def _serialize(self, attr: str, value: Any) -> Any:
        return value

    def merged(self: E, changes: Mapping[str, Any]) -> E:
        """Return a new entity with ``changes`` applied field-by-field."""

        values = {attr: getattr(self, attr) for attr in self.attribute_names()}
        values.update(changes)
        return self.build(values)


@dataclass
class User(Entity):
    """Resident, maintenance staff member or administrator."""

    id: str
    name: str
    email: str
    role: str
    apartment: str

    def __post_init__(self) -> None:
        _require_text(self, "id")
        _require_text(self, "name")
        _require_text(self, "email")
        if "@" not in self.email:
            raise ValidationError(f"Invalid email '{self.email}'.", record_id=self.id)
        _require_choice(self, "role", ROLES)
        _require_text(self, "apartment", allow_blank=True)


@dataclass
class Resource(Entity):
    """Bookable common area."""

    id: str
    name: str
    type: str
    capacity: int
    description: str
    available: bool
    image: str

    def __post_init__(self) -> None:
        _require_text(self, "id")
        _require_text(self, "name")
        _require_choice(self, "type", RESOURCE_TYPES)
        _require_count(self, "capacity")
        _require_text(self, "description", allow_blank=True)
        if not isinstance(self.available, bool):
            raise ValidationError("available must be a boolean.", record_id=self.id)
        _require_text(self, "image", allow_blank=True)


@dataclass
class InventoryItem(Entity):
    """Stock line kept by maintenance."""

    WIRE_NAMES: ClassVar[dict[str, str]] = {"last_updated": "lastUpdated"}

    id: str
    name: str
    category: str
    quantity: int
    unit: str
    last_updated: datetime

    def __post_init__(self) -> None:
        _require_text(self, "id")
        _require_text(self, "name")
        _require_text(self, "category")
        _require_count(self, "quantity")
        _require_text(self, "unit")
        self.last_updated = parse_timestamp(self.last_updated)

    def _serialize(self, attr: str, value: Any) -> Any:
        if attr == "last_updated":
            return format_timestamp(value)
        return value


@dataclass
class Reservation(Entity):
    """Booking of a resource by a user for a time slot on one day."""

    WIRE_NAMES: ClassVar[dict[str, str]] = {
        "resource_id": "resourceId",
        "user_id": "userId",
        "start_time": "startTime",
        "end_time": "endTime",
    }

    id: str
    resource_id: str
    user_id: str
    date: date
    start_time: time
    end_time: time
    status: str

    def __post_init__(self) -> None:
        _require_text(self, "id")
        _require_text(self, "resource_id")
        _require_text(self, "user_id")
        self.date = parse_date(self.date)
        self.start_time = parse_time(self.start_time)
        self.end_time = parse_time(self.end_time)
        if self.start_time >= self.end_time:
            raise ValidationError("startTime must be before endTime.", record_id=self.id)
        _require_choice(self, "status", RESERVATION_STATUSES)

    @property
    def is_active(self) -> bool:
        """Pending and approved reservations hold their slot."""

        return self.status in ACTIVE_STATUSES

    def overlaps(self, other: "Reservation") -> bool:
        return (
            self.resource_id == other.resource_id
            and self.date == other.date
            and self.start_time < other.end_time
            and other.start_time < self.end_time
        )

    def _serialize(self, attr: str, value: Any) -> Any:
        if attr == "date":
            return value.isoformat()
        if attr in ("start_time", "end_time"):
            return value.strftime("%H:%M")
        return value

