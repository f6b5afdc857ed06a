from __future__ import annotations

import random
from typing import Any, Optional

import pytest

from data_service import DataService
from flask_app import build_services, create_app
from table_store import EntityStore, StoreError


class InMemoryStore(EntityStore):
    name = "memory"

    def __init__(self):
        self.entities: dict[tuple[str, str], Any] = {}
        self.writes = 0

    def read(self, partition: str, row: str) -> Optional[Any]:
        return self.entities.get((partition, row))

    def write(self, partition: str, row: str, payload: Any) -> str:
        self.entities[(partition, row)] = payload
        self.writes += 1
        return f"write-{self.writes}"


class BrokenStore(EntityStore):
    name = "broken"

    @property
    def available(self) -> bool:
        return False

    def read(self, partition: str, row: str) -> Optional[Any]:
        raise StoreError("table unavailable")

    def write(self, partition: str, row: str, payload: Any) -> str:
        raise StoreError("table unavailable")


class FakeMessenger:
    def __init__(self, fail_custom: bool = False):
        self.fail_custom = fail_custom
        self.sent: list[tuple[str, Any]] = []

    def send_duties_template(self, duties_text, date_text, recipient=None):
        from whatsapp_service import WhatsAppAPIError

        if self.fail_custom:
            raise WhatsAppAPIError("template rejected", code=132000)
        self.sent.append(("trafikkvakt_dagens_vakter", (date_text, duties_text)))
        return {"success": True, "messageId": "wamid.custom", "template": "trafikkvakt_dagens_vakter"}

    def send_hello_world_template(self, recipient=None):
        self.sent.append(("hello_world", None))
        return {"success": True, "messageId": "wamid.hello", "template": "hello_world"}

    def send_message(self, message, recipient=None):
        self.sent.append(("text", message))
        return {"success": True, "messageId": "wamid.text"}

    def get_status(self):
        return {"status": "ready", "isReady": True}


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def data_service(store):
    return DataService(store)


@pytest.fixture
def messenger():
    return FakeMessenger()


@pytest.fixture
def services(data_service, messenger):
    config = {"WHATSAPP_NOTIFICATIONS_ENABLED": False, "NOTIFICATION_TIME": "07:00"}
    return build_services(config, data_service=data_service, messenger=messenger, rng=random.Random(7))


@pytest.fixture
def app(services):
    return create_app({"TESTING": True, "START_SCHEDULER": False}, services=services)


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def seeded(data_service):
    data_service.store_children({"children": ["Ada", "Bob", "Cleo"]})
    data_service.store_crossings(
        {
            "crossings": [
                {"name": "Elm St", "googleMapsLink": "https://maps.example/elm"},
                {"name": "Oak Ave", "googleMapsLink": ""},
            ]
        }
    )
    data_service.store_duties(
        {
            "duties": {
                "Elm St": {"Mandag": "Ada", "Tirsdag": "Bob"},
                "Oak Ave": {"Mandag": "Cleo"},
            }
        }
    )
    return data_service
