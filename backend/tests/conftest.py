import sys
import os
import json
import pytest
import pytest_asyncio
import httpx
from fastapi.testclient import TestClient
from httpx import AsyncClient, ASGITransport
from typing import Any, AsyncGenerator, Callable, Dict, Generator, List, Tuple

# Add the backend directory to the Python path
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

# Override settings for testing
os.environ["APP_ENV"] = "test"
os.environ["CRON_SECRET"] = "test-cron-secret"
os.environ["APP_BASE_URL"] = ""
os.environ["SCHEDULER_TIMERS_ENABLED"] = "false"
os.environ["SIMULATED_DELAY_SCALE"] = "0"
os.environ["PURCHASE_SDK_ENABLED"] = "false"

from app.core.config import settings
from app.core.service_provider import TestingServices, get_services
from app.main import app
from app.services.fluid.client import FluidApiClient

COMPANY = "acme"
TOKEN = "cdrtkn_test"
V1 = "/api/company/v1"
PUBLIC = f"/api/public/{settings.FLUID_PUBLIC_API_VERSION}"

Route = Any


class FluidApiStub:
    """
    In-memory stand-in for the Fluid REST API, served through httpx.MockTransport.

    Routes are keyed by ``(method, path)``. A route value is either a JSON
    payload, an ``httpx.Response`` or a callable taking the request.
    """

    def __init__(self) -> None:
        self.routes: Dict[Tuple[str, str], Route] = {}
        self.requests: List[httpx.Request] = []

    def add(self, method: str, path: str, route: Route) -> None:
        self.routes[(method.upper(), path)] = route

    def calls(self, method: str, path: str) -> List[httpx.Request]:
        return [r for r in self.requests if r.method == method.upper() and r.url.path == path]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self.routes.get((request.method, request.url.path))
        if route is None:
            return httpx.Response(404, json={"error": f"no route for {request.method} {request.url.path}"})
        if callable(route):
            route = route(request)
        if isinstance(route, httpx.Response):
            return route
        return httpx.Response(200, content=json.dumps(route).encode(), headers={"Content-Type": "application/json"})

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


def install_happy_path(api: FluidApiStub) -> None:
    api.add("GET", f"{V1}/products", {"products": [{"id": 101, "name": "Widget", "price": "19.99"}]})
    api.add("GET", "/api/enrollment_packs", {"enrollment_packs": [{"id": 501, "name": "Starter Pack"}]})
    api.add("GET", f"{V1}/orders", {"orders": [{"id": 7001}]})
    api.add("POST", f"{PUBLIC}/session", {"cart_token": "ct_123"})
    api.add("POST", f"{PUBLIC}/commerce/carts/ct_123/items", {"items": [{"product_id": 101}]})
    api.add("GET", f"{PUBLIC}/commerce/carts/ct_123/cart_info", {"cart": {"items": [{"product": {"id": 101}}]}})
    api.add("POST", f"{PUBLIC}/commerce/carts/ct_123/events", {})
    api.add("POST", f"{PUBLIC}/commerce/carts/ct_123/checkout", {"id": 9001, "token": "ord_tok"})


@pytest.fixture
def fluid_api() -> FluidApiStub:
    api = FluidApiStub()
    install_happy_path(api)
    return api


@pytest.fixture
def client_factory(fluid_api: FluidApiStub) -> Callable[[str, str], FluidApiClient]:
    def factory(company_subdomain: str, auth_token: str) -> FluidApiClient:
        return FluidApiClient(
            company_subdomain,
            auth_token,
            http_client=httpx.AsyncClient(transport=fluid_api.transport()),
            simulated_delay_scale=0,
        )

    return factory


@pytest.fixture
def services(client_factory) -> TestingServices:
    return TestingServices(client_factory=client_factory, timers_enabled=False)


@pytest.fixture
def client(services: TestingServices) -> Generator:
    app.dependency_overrides[get_services] = lambda: services
    try:
        with TestClient(app, base_url="http://test") as c:
            yield c
    finally:
        app.dependency_overrides.pop(get_services, None)


class _LifespanManager:
    def __init__(self, application):
        self.app = application
        self._context = None

    async def __aenter__(self):
        self._context = self.app.router.lifespan_context(self.app)
        await self._context.__aenter__()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        if self._context is not None:
            await self._context.__aexit__(exc_type, exc, tb)


@pytest_asyncio.fixture
async def async_client(services: TestingServices) -> AsyncGenerator[AsyncClient, None]:
    app.dependency_overrides[get_services] = lambda: services
    try:
        async with _LifespanManager(app):
            transport = ASGITransport(app=app)
            async with AsyncClient(transport=transport, base_url="http://test") as ac:
                yield ac
    finally:
        app.dependency_overrides.pop(get_services, None)
