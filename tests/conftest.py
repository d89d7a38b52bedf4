import asyncio
from types import SimpleNamespace

import pytest
from bson import ObjectId
from mongomock_motor import AsyncMongoMockClient
from starlette.testclient import TestClient

from app.db.mongo import AUDIT_LOGS, INCENTIVES, PICKUP_REQUESTS, USERS, ensure_indexes
from app.db.session import get_db
from app.main import app
from app.mapper.users_mapper import to_account
from app.repositories.audit_repository import AuditRepository
from app.repositories.incentive_repository import IncentiveRepository
from app.repositories.pickup_repository import PickupRepository
from app.repositories.user_repository import UserRepository
from app.services.audit_service import AuditService
from app.services.incentive_service import IncentiveLedger
from app.services.pickup_service import PickupService
from app.services.route_service import RouteService

DEPOT = {"lat": 26.1445, "lng": 91.7362}


def _user(role, ward="4", **extra):
    doc = {"_id": ObjectId(), "name": f"{role} {ward}", "email": f"{ObjectId()}@test.local",
           "role": role, "ward_number": ward}
    doc.update(extra)
    return doc


@pytest.fixture
def db():
    # a fresh database per test keeps state from leaking between them
    database = AsyncMongoMockClient()[f"test_{ObjectId()}"]
    asyncio.run(ensure_indexes(database))
    return database


@pytest.fixture
def users(db):
    docs = {
        "citizen": _user(
            "citizen",
            house_number="H001",
            area="Bhetapara - Lane 1",
            location={"lat": 26.1401, "lng": 91.7301},
        ),
        "neighbour": _user("citizen", house_number="H002", area="Bhetapara - Lane 2"),
        "far_citizen": _user("citizen", ward="7", house_number="H100", area="Beltola"),
        "collector": _user("collector"),
        "rival": _user("collector"),
        "far_collector": _user("collector", ward="7"),
        "wardless": _user("collector", ward=None),
        # legacy document shape: upper-case role
        "admin": _user("ADMIN", ward=None),
    }
    asyncio.run(db[USERS].insert_many(list(docs.values())))
    return SimpleNamespace(**docs)


@pytest.fixture
def accounts(users):
    return SimpleNamespace(**{name: to_account(doc) for name, doc in vars(users).items()})


@pytest.fixture
def services(db):
    audit = AuditService(AuditRepository(db[AUDIT_LOGS]))
    ledger = IncentiveLedger(IncentiveRepository(db[INCENTIVES]), audit)
    pickups = PickupRepository(db[PICKUP_REQUESTS])
    return SimpleNamespace(
        audit=audit,
        ledger=ledger,
        pickups=PickupService(pickups, UserRepository(db[USERS]), ledger, audit),
        route=RouteService(pickups, audit, DEPOT),
        pickup_repo=pickups,
    )


@pytest.fixture
def client(db):
    app.dependency_overrides[get_db] = lambda: db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def auth(users):
    def headers(name):
        return {"X-User-Id": str(getattr(users, name)["_id"])}

    return headers
