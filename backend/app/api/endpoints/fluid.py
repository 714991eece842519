from typing import Any, Dict, List

import httpx
import structlog
from fastapi import APIRouter, Depends

from app.core.config import settings
from app.core.service_provider import TestingServices, get_services
from app.schemas.testing import ProductsRequest, ProductsResponse
from app.services.fluid.client import FluidApiClient
from app.services.fluid.exceptions import FluidError

router = APIRouter(prefix="/fluid", tags=["fluid"])
logger = structlog.get_logger()


async def _fetch_page(client: FluidApiClient, request: ProductsRequest, index: int) -> List[Dict[str, Any]]:
    if request.product_type == "enrollment":
        # Enrollment pack paging is zero-based
        return await client.get_enrollment_packs(page=index, per_page=settings.PRODUCT_PAGE_SIZE, status="active")
    return await client.get_products(page=index + 1, per_page=settings.PRODUCT_PAGE_SIZE, type=request.type)


@router.post("/products", response_model=ProductsResponse)
async def list_products(
    request: ProductsRequest,
    services: TestingServices = Depends(get_services),
) -> ProductsResponse:
    """Fetch every catalog page, stopping at an empty page, an error or the page cap."""
    kind = "enrollment packs" if request.product_type == "enrollment" else "products"
    products: List[Dict[str, Any]] = []

    async with services.client_factory(request.company_subdomain, request.auth_token) as client:
        for index in range(settings.PRODUCT_MAX_PAGES):
            try:
                page = await _fetch_page(client, request, index)
            except (FluidError, httpx.HTTPError) as exc:
                logger.warning("Catalog page fetch failed", kind=kind, page=index, error=str(exc))
                break
            if not page:
                break
            products.extend(page)

    logger.info("Fetched catalog", kind=kind, count=len(products), company=request.company_subdomain)
    return ProductsResponse(products=products, count=len(products))
