import mongomock
import pytest
from fastapi.testclient import TestClient

from database import ensure_indexes
from main import create_app
from notifications import ChannelHub


class RecordingConnection:
    """Stands in for a websocket: keeps every message sent to it."""

    def __init__(self):
        self.messages = []

    async def send_json(self, message):
        self.messages.append(message)


class BrokenConnection:
    async def send_json(self, message):
        raise RuntimeError("socket closed")


def barber_payload(**overrides):
    payload = {
        "firstName": "John",
        "lastName": "Smith",
        "email": "j@x.com",
        "phone": "555-0100",
        "shopName": "Sharp Cuts",
        "address": "1 Main St",
        "experience": "3-5 yrs",
        "specialties": ["fade", "beard"],
        "password": "pw123",
    }
    payload.update(overrides)
    return payload


def booking_payload(**overrides):
    payload = {
        "name": "Jane",
        "email": "jane@x.com",
        "phone": "555-0199",
        "service": "Haircut",
        "barber": "John Smith",
        "date": "2026-11-02",
        "time": "10:30",
        "notes": "Short on the sides",
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def database():
    db = mongomock.MongoClient()["barbershop_test"]
    ensure_indexes(db)
    return db


@pytest.fixture
def hub():
    return ChannelHub()


@pytest.fixture
def app(database, hub):
    return create_app(database=database, hub=hub, channel_auth_required=True)


# Entering the client keeps requests and websockets on one event loop
@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def open_client(database, hub):
    """Client for an app that accepts channel joins without a token."""
    with TestClient(create_app(database=database, hub=hub, channel_auth_required=False)) as test_client:
        yield test_client
