from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class LocationIn(BaseModel):
    # left untyped: a non-numeric pair falls back to the registered location
    lat: Optional[Any] = None
    lng: Optional[Any] = None


class CreatePickupBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    waste_type: Optional[str] = Field(default=None, alias="wasteType")
    pickup_time: Optional[datetime] = Field(default=None, alias="pickupTime")
    overflow: bool = False
    location: Optional[LocationIn] = None


class VerifyPickupBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    verified: Optional[bool] = None
    verification_status: Optional[str] = Field(default=None, alias="verificationStatus")
