"""
Trip booking session state.

TripState is the single persisted unit per caller phone. The JSON shape uses
camelCase keys (tripType, tripStartDate, ...) because the same document is
exchanged with the reasoning model, the booking endpoint and connected
clients.

Enum fields arrive from the reasoning model as loose strings; they are
coerced into closed sets here and anything unrecognized fails validation.
"""
from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Type

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class Intent(str, Enum):
    GREET = "greet"
    ASK_SOURCE = "ask_source"
    ASK_DESTINATION = "ask_destination"
    ASK_TRIP_TYPE = "ask_trip_type"
    ASK_DATE = "ask_date"
    ASK_PREFERENCES = "ask_preferences"
    CONFIRM_TRIP = "confirm_trip"
    CREATE_TRIP = "create_trip"
    GENERAL = "general"
    UNKNOWN = "unknown"


class TripType(str, Enum):
    ONE_WAY = "one_way"
    ROUND_TRIP = "round_trip"
    NOT_DECIDED = "not_decided"


class VehicleType(str, Enum):
    SUV = "suv"
    SEDAN = "sedan"
    HATCHBACK = "hatchback"
    NONE = "none"


class Language(str, Enum):
    ENGLISH = "en"
    HINDI = "hi"
    UNSET = "xx"


# Accepted spellings beyond the enum value / member name
_LANGUAGE_ALIASES = {
    "english": Language.ENGLISH,
    "en_us": Language.ENGLISH,
    "en_in": Language.ENGLISH,
    "hindi": Language.HINDI,
    "hinglish": Language.HINDI,
    "hi_in": Language.HINDI,
    "unset": Language.UNSET,
}


def _normalize_token(value: str) -> str:
    return value.strip().lower().replace("-", "_").replace(" ", "_")


def coerce_enum(enum_cls: Type[Enum], value: Any, empty: Enum, aliases: Dict[str, Enum] = None) -> Enum:
    """
    Coerce a loosely typed value into enum_cls.

    Matches the enum value or member name case-insensitively, treating
    hyphens and spaces as underscores. Empty or missing values map to
    `empty`. Anything else raises ValueError.
    """
    if isinstance(value, enum_cls):
        return value
    if value is None:
        return empty
    if not isinstance(value, str):
        raise ValueError(f"{enum_cls.__name__} must be a string, got {type(value).__name__}")
    token = _normalize_token(value)
    if not token:
        return empty
    for member in enum_cls:
        if token == member.value or token == member.name.lower():
            return member
    if aliases and token in aliases:
        return aliases[token]
    raise ValueError(f"Unrecognized {enum_cls.__name__}: {value!r}")


class _CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        validate_assignment=True,
    )


class Preferences(_CamelModel):
    vehicle_type: VehicleType = VehicleType.NONE
    language: Language = Language.UNSET

    @field_validator("vehicle_type", mode="before")
    @classmethod
    def _coerce_vehicle(cls, v):
        return coerce_enum(VehicleType, v, VehicleType.NONE)

    @field_validator("language", mode="before")
    @classmethod
    def _coerce_language(cls, v):
        return coerce_enum(Language, v, Language.UNSET, _LANGUAGE_ALIASES)


class User(_CamelModel):
    id: str = ""
    name: str = ""
    phone: str = ""

    @field_validator("id", "name", "phone", mode="before")
    @classmethod
    def _stringify(cls, v):
        return "" if v is None else str(v)


class TripState(_CamelModel):
    """Structured state of one booking conversation."""

    intent: Intent
    source: str = ""
    destination: str = ""
    trip_type: TripType = TripType.NOT_DECIDED
    trip_start_date: str = ""
    trip_end_date: str = ""
    preferences: Preferences = Field(default_factory=Preferences)
    trip_created: bool = False
    agent_response: str = ""
    user: User = Field(default_factory=User)

    @field_validator("intent", mode="before")
    @classmethod
    def _coerce_intent(cls, v):
        if v is None or (isinstance(v, str) and not v.strip()):
            raise ValueError("intent is required")
        return coerce_enum(Intent, v, Intent.UNKNOWN)

    @field_validator("trip_type", mode="before")
    @classmethod
    def _coerce_trip_type(cls, v):
        return coerce_enum(TripType, v, TripType.NOT_DECIDED)

    @field_validator("source", "destination", "trip_start_date", "trip_end_date", "agent_response", mode="before")
    @classmethod
    def _text(cls, v):
        if v is None:
            return ""
        if not isinstance(v, str):
            raise ValueError("expected a string")
        return v.strip()

    @field_validator("preferences", mode="before")
    @classmethod
    def _preferences_default(cls, v):
        return {} if v is None else v

    def to_dict(self) -> Dict[str, Any]:
        """JSON-ready dict with camelCase keys."""
        return self.model_dump(mode="json", by_alias=True)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)

    @classmethod
    def from_json(cls, raw: str | bytes) -> "TripState":
        return cls.model_validate_json(raw)


def initial_state(user_id: str, name: str, phone: str) -> TripState:
    """Fresh session: GREET with every slot empty and the caller bound."""
    return TripState(
        intent=Intent.GREET,
        user=User(id=user_id or "", name=name or "", phone=phone),
    )
