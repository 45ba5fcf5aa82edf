"""
Shared fixtures: settings, fakes, app and an ASGI-backed async client.

The app is built without running its lifespan, with fakes installed on
app.state, so no cluster or Linode access happens.
"""
import httpx
import pytest
import pytest_asyncio

from certsync import LoadBalancerTarget
from config import WebhookSettings
from main import create_app
from tests.fakes import (
    SECRET_NAME,
    SECRET_NAMESPACE,
    FakeBalancerClient,
    FakeSecretFetcher,
    install_services,
    make_pem_pair,
    secret_data,
)


@pytest.fixture(scope="session")
def pem_pair():
    """A matching certificate and key, generated once per session."""
    return make_pem_pair()


@pytest.fixture
def settings():
    return WebhookSettings(
        linode_token="test-token",
        nodebalancer_id="12345",
        https_config_id="12345",
        fetch_max_attempts=3,
        fetch_retry_delay=0,
        push_max_attempts=3,
        push_backoff_base=0,
        push_backoff_max=0,
        skip_unchanged=False,
    )


@pytest.fixture
def target():
    return LoadBalancerTarget(balancer_id="12345", https_config_id="12345")


@pytest.fixture
def fetcher(pem_pair):
    cert_pem, key_pem = pem_pair
    return FakeSecretFetcher({(SECRET_NAMESPACE, SECRET_NAME): secret_data(cert_pem, key_pem)})


@pytest.fixture
def balancer():
    return FakeBalancerClient()


@pytest.fixture
def app(settings, fetcher, balancer, target):
    app = create_app(settings)
    install_services(app, settings, fetcher, balancer, target)
    return app


@pytest_asyncio.fixture
async def async_client(app):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
