import pytest
from fastapi.testclient import TestClient

from app.vendops.core.metrics import metrics


@pytest.fixture(autouse=True)
def reset_metrics():
    metrics.reset()
    yield


@pytest.fixture()
def client():
    import app.main as main

    with TestClient(main.create_app()) as client:
        yield client
