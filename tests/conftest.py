import pytest

import mutate
from exc import DirectoryUnavailable
from models import Service


SERVICES = [
    Service(name="db", namespace="prod", type="ClusterIP", clusterIP="10.0.0.5"),
    Service(name="web", namespace="prod", type="NodePort", clusterIP="10.0.0.6"),
    Service(name="headless", namespace="prod", type="ClusterIP", clusterIP="None"),
    Service(name="cache", namespace="dev", type="ClusterIP", clusterIP="10.0.1.7"),
]


class FakeProvider:
    def __init__(self, services=None):
        self.services = SERVICES if services is None else services
        self.calls = []

    def list_services(self, timeout=None):
        self.calls.append(timeout)
        return self.services


class EmptyProvider(FakeProvider):
    def __init__(self):
        super().__init__(services=[])


class ErrorProvider(FakeProvider):
    def list_services(self, timeout=None):
        self.calls.append(timeout)
        raise DirectoryUnavailable("connection refused")


@pytest.fixture()
def fake_provider():
    return FakeProvider()


@pytest.fixture()
def app():
    app = mutate.create_app(
        PROVIDER=FakeProvider,
        LABEL_NAME="k8s-app",
        TESTING=True,
    )
    yield app


@pytest.fixture()
def client(app):
    return app.test_client()
