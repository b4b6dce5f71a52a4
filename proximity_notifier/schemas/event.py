from pydantic import BaseModel, Field, field_validator
from datetime import datetime
from typing import Optional, Tuple

from proximity_notifier.utils.locality import normalize_city

# Categories users can opt into for event notifications.
EVENT_CATEGORIES = frozenset({
    "Music Concert",
    "Birthday Party",
    "Carnival",
    "Get Together",
    "Music Karaoke",
    "Comedy Night",
    "Gospel Concert",
    "Instrumental",
    "Jazz Room",
    "Workshop",
    "Conference",
    "Festival",
    "Other",
})

class Event(BaseModel):
    id: str = Field(min_length=1, max_length=64)
    title: Optional[str] = None
    category: str
    city_name: Optional[str] = None
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)
    occurs_at: datetime

    class Config:
        frozen = True

    @field_validator("category")
    @classmethod
    def category_must_be_known(cls, value: str) -> str:
        if value not in EVENT_CATEGORIES:
            raise ValueError(f"Unknown event category: {value!r}")
        return value

    @property
    def coordinates(self) -> Optional[Tuple[float, float]]:
        if self.latitude is None or self.longitude is None:
            return None
        return (self.latitude, self.longitude)

    @property
    def normalized_city(self) -> Optional[str]:
        return normalize_city(self.city_name)

    @property
    def is_matchable(self) -> bool:
        return self.normalized_city is not None or self.coordinates is not None
