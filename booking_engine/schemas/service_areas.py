# booking_engine/schemas/service_areas.py

import json
from typing import Literal, Optional
from pydantic import BaseModel, Field, field_validator, model_validator


Coordinate = tuple[float, float]  # (lat, lng)


def _valid_coordinate(coord: Coordinate) -> bool:
    lat, lng = coord
    return -90 <= lat <= 90 and -180 <= lng <= 180


class ServiceAreaBoundary(BaseModel):
    boundary_type: Literal["circle", "polygon"]
    center_lat: Optional[float] = None
    center_lng: Optional[float] = None
    radius_km: Optional[float] = None
    polygon: Optional[list[Coordinate]] = None

    @model_validator(mode="after")
    def check_boundary(self):
        if self.boundary_type == "circle":
            if self.center_lat is None or self.center_lng is None or self.radius_km is None:
                raise ValueError("Circle boundaries require center coordinates and radius")
            if self.radius_km <= 0:
                raise ValueError("Circle radius must be greater than 0")
            if not _valid_coordinate((self.center_lat, self.center_lng)):
                raise ValueError("Invalid center coordinates")
        else:
            if not self.polygon or len(self.polygon) < 3:
                raise ValueError("Polygon boundaries require at least 3 coordinates")
            if not all(_valid_coordinate(c) for c in self.polygon):
                raise ValueError("Invalid polygon coordinates")
        return self


class ServiceAreaCreate(ServiceAreaBoundary):
    name: str = Field(min_length=1, max_length=200)
    description: Optional[str] = None
    base_travel_surcharge: float = Field(0.0, ge=0)
    per_km_surcharge: float = Field(0.0, ge=0)
    max_travel_distance_km: Optional[float] = Field(None, gt=0)
    available_services: list[int] = []

    model_config = {"extra": "forbid"}


class ServiceAreaUpdate(BaseModel):
    is_active: Optional[bool] = None
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    base_travel_surcharge: Optional[float] = Field(None, ge=0)
    per_km_surcharge: Optional[float] = Field(None, ge=0)
    max_travel_distance_km: Optional[float] = Field(None, gt=0)
    available_services: Optional[list[int]] = None
    boundary: Optional[ServiceAreaBoundary] = None

    model_config = {"extra": "forbid"}


class ServiceAreaRead(BaseModel):
    id: int
    tenant_id: int
    name: str
    description: Optional[str] = None
    boundary_type: str
    center_lat: Optional[float] = None
    center_lng: Optional[float] = None
    radius_km: Optional[float] = None
    polygon: Optional[list[Coordinate]] = None
    base_travel_surcharge: float
    per_km_surcharge: float
    max_travel_distance_km: Optional[float] = None
    available_services: list[int]
    is_active: bool

    model_config = {"from_attributes": True}

    @field_validator("polygon", "available_services", mode="before")
    @classmethod
    def decode_json(cls, value):
        if isinstance(value, str):
            return json.loads(value)
        return value
