from bson import ObjectId

from app.models.account import Account


def oid_str(x):
    return str(x) if isinstance(x, ObjectId) else x


def to_account(doc: dict) -> Account:
    """
    Normalize a users document into an Account.

    Older documents store roles upper-case ("CITIZEN") and the collector's
    ward under `assigned_ward`; both are folded in here.
    """
    role = (doc.get("role") or "citizen").strip().lower()
    location = doc.get("location")
    if not isinstance(location, dict):
        location = None

    return Account(
        id=doc["_id"],
        role=role,
        name=doc.get("name") or doc.get("full_name"),
        email=doc.get("email"),
        ward_number=doc.get("ward_number") or doc.get("assigned_ward"),
        house_number=doc.get("house_number"),
        area=doc.get("area"),
        location=location,
    )


def to_owner_summary(doc: dict) -> dict:
    return {
        "id": oid_str(doc["_id"]),
        "name": doc.get("name") or doc.get("full_name"),
        "email": doc.get("email"),
        "house_number": doc.get("house_number"),
    }
