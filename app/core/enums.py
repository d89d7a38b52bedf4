from enum import Enum


class UserRole(str, Enum):
    citizen = "citizen"
    collector = "collector"
    admin = "admin"


class PickupStatus(str, Enum):
    pending = "pending"
    assigned = "assigned"
    completed = "completed"
    cancelled = "cancelled"
    missed = "missed"


class VerificationStatus(str, Enum):
    pending = "pending"
    verified = "verified"
    false_alarm = "false_alarm"


class WasteType(str, Enum):
    wet = "wet"
    dry = "dry"
    e_waste = "e-waste"
