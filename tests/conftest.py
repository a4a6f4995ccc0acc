"""Pytest configuration: an app wired to an in-memory Mongo and recording fakes."""

import mongomock
import pytest
from fastapi.testclient import TestClient

from config import Settings
from deps import Services, ensure_indexes
from main import create_app
from notifications import SmsNotifier
from payments import StripeGateway
from tests.helpers import register


class RecordingMailer:
    """Collects outgoing mail; addresses in ``fail_for`` raise like a broken SMTP relay."""

    enabled = True

    def __init__(self):
        self.sent = []
        self.fail_for = set()

    def send(self, to, subject, html):
        if to in self.fail_for:
            raise RuntimeError(f"SMTP refused {to}")
        self.sent.append({"to": to, "subject": subject, "html": html})
        return True


class RecordingImages:
    enabled = True

    def __init__(self):
        self.deleted = []
        self.fail_for = set()

    def delete(self, url):
        if url in self.fail_for:
            return False
        self.deleted.append(url)
        return True

    def delete_many(self, urls):
        return all([self.delete(url) for url in urls])


@pytest.fixture
def settings():
    return Settings(stripe_secret_key="sk_test_dummy", client_url="http://shop.test")


@pytest.fixture
def db():
    database = mongomock.MongoClient().db
    ensure_indexes(database)
    return database


@pytest.fixture
def services(settings, db):
    return Services(
        settings=settings,
        db=db,
        mailer=RecordingMailer(),
        sms=SmsNotifier(settings),
        images=RecordingImages(),
        payments=StripeGateway(settings),
    )


@pytest.fixture
def client(services):
    return TestClient(create_app(services=services))


@pytest.fixture
def seller(client):
    return register(client, "Seller")


@pytest.fixture
def buyer(client):
    return register(client, "Buyer")
