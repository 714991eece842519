import httpx
import pytest
from fastapi.testclient import TestClient

from conftest import COMPANY, TOKEN, V1, FluidApiStub
from app.core.config import settings

BODY = {"companySubdomain": COMPANY, "authToken": TOKEN}


def _paged(pages: dict, key: str):
    def route(request: httpx.Request):
        page = int(request.url.params["page"])
        return {key: pages.get(page, [])}

    return route


def _requested_pages(fluid_api: FluidApiStub, path: str):
    return [int(r.url.params["page"]) for r in fluid_api.calls("GET", path)]


def test_products_are_collected_until_an_empty_page(client: TestClient, fluid_api: FluidApiStub) -> None:
    fluid_api.add(
        "GET",
        f"{V1}/products",
        _paged({1: [{"id": 1}, {"id": 2}], 2: [{"id": 3}]}, "products"),
    )

    response = client.post("/api/fluid/products", json={**BODY, "type": "subscription"})

    assert response.status_code == 200
    assert response.json() == {"products": [{"id": 1}, {"id": 2}, {"id": 3}], "count": 3}
    calls = fluid_api.calls("GET", f"{V1}/products")
    assert _requested_pages(fluid_api, f"{V1}/products") == [1, 2, 3]
    assert all(r.url.params["type"] == "subscription" for r in calls)
    assert all(r.url.params["per_page"] == str(settings.PRODUCT_PAGE_SIZE) for r in calls)


def test_enrollment_packs_page_from_zero(client: TestClient, fluid_api: FluidApiStub) -> None:
    fluid_api.add(
        "GET",
        "/api/enrollment_packs",
        _paged({0: [{"id": 501}], 1: [{"id": 502}]}, "enrollment_packs"),
    )

    response = client.post("/api/fluid/products", json={**BODY, "productType": "enrollment"})

    assert response.json()["count"] == 2
    calls = fluid_api.calls("GET", "/api/enrollment_packs")
    assert [int(r.url.params["page"]) for r in calls] == [0, 1, 2]
    assert all(r.url.params["status"] == "active" for r in calls)
    assert calls[0].url.host == "api.fluid.app"


def test_upstream_error_keeps_pages_fetched_so_far(client: TestClient, fluid_api: FluidApiStub) -> None:
    def route(request: httpx.Request):
        if request.url.params["page"] == "1":
            return {"products": [{"id": 1}]}
        return httpx.Response(502, text="bad gateway")

    fluid_api.add("GET", f"{V1}/products", route)

    response = client.post("/api/fluid/products", json=BODY)

    assert response.status_code == 200
    assert response.json() == {"products": [{"id": 1}], "count": 1}


def test_page_cap_stops_paging(client: TestClient, fluid_api: FluidApiStub, monkeypatch) -> None:
    monkeypatch.setattr(settings, "PRODUCT_MAX_PAGES", 3)
    fluid_api.add("GET", f"{V1}/products", lambda request: {"products": [{"id": request.url.params["page"]}]})

    data = client.post("/api/fluid/products", json=BODY).json()

    assert data["count"] == 3
    assert _requested_pages(fluid_api, f"{V1}/products") == [1, 2, 3]


def test_products_request_requires_credentials(client: TestClient) -> None:
    response = client.post("/api/fluid/products", json={"companySubdomain": COMPANY})
    assert response.status_code == 422
