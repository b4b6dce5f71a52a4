from pydantic import BaseModel, Field, field_validator
from typing import Optional, Set, Tuple

from proximity_notifier.utils.locality import normalize_city

class UserNotificationProfile(BaseModel):
    user_id: str
    push_destination: Optional[str] = None
    location_city_name: Optional[str] = None
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)
    notifications_enabled: bool = True
    preferred_categories: Set[str] = Field(default_factory=set)
    window_start_hour: int = Field(8, ge=0, le=23)
    window_end_hour: int = Field(22, ge=0, le=23)
    timezone: str = "UTC"

    class Config:
        from_attributes = True
        frozen = True

    @field_validator("preferred_categories", mode="before")
    @classmethod
    def empty_when_missing(cls, value):
        return set() if value is None else value

    @property
    def coordinates(self) -> Optional[Tuple[float, float]]:
        if self.latitude is None or self.longitude is None:
            return None
        return (self.latitude, self.longitude)

    @property
    def normalized_city(self) -> Optional[str]:
        return normalize_city(self.location_city_name)

    @property
    def has_push_destination(self) -> bool:
        return bool(self.push_destination and self.push_destination.strip())
