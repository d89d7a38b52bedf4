from __future__ import annotations

from typing import Optional

from app.core.enums import UserRole
from app.models.common import PyObjectId, WasteBaseModel


class GeoPoint(WasteBaseModel):
    lat: Optional[float] = None
    lng: Optional[float] = None


class Account(WasteBaseModel):
    """Read-only view of a `users` document: who is calling, and from where."""

    id: PyObjectId
    role: UserRole
    name: Optional[str] = None
    email: Optional[str] = None
    ward_number: Optional[str] = None
    house_number: Optional[str] = None
    area: Optional[str] = None
    location: Optional[GeoPoint] = None
