from enum import Enum

from bson import ObjectId
from datetime import datetime


def serialize_mongo(obj):
    """
    Recursively convert MongoDB objects to JSON-safe values
    """
    if isinstance(obj, ObjectId):
        return str(obj)

    if isinstance(obj, datetime):
        return obj.isoformat()

    if isinstance(obj, Enum):
        return obj.value

    if isinstance(obj, list):
        return [serialize_mongo(i) for i in obj]

    if isinstance(obj, dict):
        return {k: serialize_mongo(v) for k, v in obj.items()}

    return obj


def to_public(doc: dict | None) -> dict | None:
    """Expose `_id` as `id` and make the document JSON-safe."""
    if doc is None:
        return None
    out = dict(doc)
    if "_id" in out:
        out["id"] = out.pop("_id")
    return serialize_mongo(out)
