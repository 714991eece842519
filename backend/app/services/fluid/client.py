"""
Fluid API client.

Authentication uses company droplet tokens (prefix ``cdrtkn``), issued when a
company installs the droplet.
"""
import enum
import logging
from typing import Any, Dict, List, Optional

import httpx

from app.core.config import settings
from app.services.fluid.exceptions import FluidApiError, FluidError
from app.services.fluid.gateways import AuthGateway, RefundGateway, build_auth_gateway, build_refund_gateway
from app.services.fluid.responses import extract_cart_token, extract_collection

logger = logging.getLogger(__name__)


class ApiVariant(str, enum.Enum):
    """Base URL families exposed by Fluid."""

    COMPANY_V1 = "v1"
    PUBLIC = "public"
    ENROLLMENT = "enrollment"
    BASE = "base"


class CartSession(dict):
    """Raw session payload with the decoded cart token attached."""

    @property
    def cart_token(self) -> str:
        return self["cart_token"]


def _query(**params: Any) -> Dict[str, Any]:
    return {key: value for key, value in params.items() if value is not None and value != ""}


class FluidApiClient:
    """Authenticated wrapper around the Fluid REST API."""

    def __init__(
        self,
        company_subdomain: str,
        auth_token: str,
        *,
        http_client: Optional[httpx.AsyncClient] = None,
        domain: str = "fluid.app",
        public_api_version: str = "v2025-06",
        timeout: float = 30.0,
        refunds: Optional[RefundGateway] = None,
        auth: Optional[AuthGateway] = None,
        refund_mode: str = "simulated",
        auth_mode: str = "simulated",
        simulated_delay_scale: float = 1.0,
    ) -> None:
        self.company_subdomain = company_subdomain
        self.auth_token = auth_token
        self.domain = domain
        self.public_api_version = public_api_version
        self._owns_http_client = http_client is None
        self._http = http_client or httpx.AsyncClient(timeout=timeout)
        self.refunds = refunds or build_refund_gateway(refund_mode, self, delay_scale=simulated_delay_scale)
        self.auth = auth or build_auth_gateway(auth_mode, self, delay_scale=simulated_delay_scale)

    async def __aenter__(self) -> "FluidApiClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def close(self) -> None:
        if self._owns_http_client:
            await self._http.aclose()

    def base_url(self, variant: ApiVariant = ApiVariant.COMPANY_V1) -> str:
        variant = ApiVariant(variant)
        if variant == ApiVariant.COMPANY_V1:
            return f"https://{self.company_subdomain}.{self.domain}/api/company/v1"
        if variant == ApiVariant.ENROLLMENT:
            # Enrollment packs are served from the global host, not the tenant
            return f"https://api.{self.domain}/api"
        if variant == ApiVariant.PUBLIC:
            return f"https://{self.company_subdomain}.{self.domain}/api/public/{self.public_api_version}"
        return f"https://{self.company_subdomain}.{self.domain}/api"

    async def request(
        self,
        endpoint: str,
        variant: ApiVariant = ApiVariant.COMPANY_V1,
        *,
        method: str = "GET",
        params: Optional[Dict[str, Any]] = None,
        json: Any = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Any:
        """
        Send a request and return the decoded JSON body.

        Raises:
            FluidApiError: the response status is outside the 2xx range.
        """
        url = f"{self.base_url(variant)}{endpoint}"
        request_headers = {"Content-Type": "application/json"}
        # The public commerce API is unauthenticated; company context is in the host
        if ApiVariant(variant) != ApiVariant.PUBLIC:
            request_headers["Authorization"] = f"Bearer {self.auth_token}"
        if headers:
            request_headers.update(headers)

        logger.debug("Fluid API request %s %s (%s)", method, url, ApiVariant(variant).value)
        response = await self._http.request(
            method,
            url,
            params=params or None,
            json=json,
            headers=request_headers,
        )
        logger.debug("Fluid API response %s for %s %s", response.status_code, method, url)

        if not response.is_success:
            body = response.text
            logger.error(
                "Fluid API error %s %s for %s %s", response.status_code, response.reason_phrase, method, url
            )
            raise FluidApiError(response.status_code, response.reason_phrase, body, url=url)

        if not response.content:
            return {}
        return response.json()

    async def get_company_info(self) -> Any:
        return await self.request("/company")

    async def get_orders(self, page: Optional[int] = None, per_page: Optional[int] = None) -> List[Dict[str, Any]]:
        payload = await self.request("/orders", params=_query(page=page, per_page=per_page))
        return extract_collection(payload, keys=("orders", "data"))

    async def get_customers(self, page: Optional[int] = None, per_page: Optional[int] = None) -> Any:
        return await self.request("/customers", params=_query(page=page, per_page=per_page))

    async def get_products(
        self,
        page: Optional[int] = None,
        per_page: Optional[int] = None,
        type: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        payload = await self.request("/products", params=_query(page=page, per_page=per_page, type=type))
        return extract_collection(payload)

    async def get_enrollment_packs(
        self,
        page: Optional[int] = None,
        per_page: Optional[int] = None,
        status: Optional[str] = None,
        search_query: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        # Enrollment paging starts at 0, so page=0 must be sent
        params = _query(per_page=per_page, status=status, search_query=search_query)
        if page is not None:
            params["page"] = page
        payload = await self.request("/enrollment_packs", ApiVariant.ENROLLMENT, params=params)
        return extract_collection(payload)

    async def create_session(self) -> CartSession:
        """Create a commerce session and return it with its cart token."""
        if not self.company_subdomain:
            raise FluidError("Company subdomain is required to create a session")

        logger.info("Creating Fluid session for company %s", self.company_subdomain)
        payload = await self.request("/session", ApiVariant.PUBLIC, method="POST", json={})
        session = CartSession(payload if isinstance(payload, dict) else {})
        session["cart_token"] = extract_cart_token(payload)
        return session

    async def add_to_cart(
        self,
        cart_token: str,
        product_id: str,
        quantity: int = 1,
        variant_id: Optional[str] = None,
    ) -> Any:
        body: Dict[str, Any] = {"product_id": product_id, "quantity": quantity or 1}
        if variant_id:
            body["variant_id"] = variant_id
        return await self.request(
            f"/commerce/carts/{cart_token}/items", ApiVariant.PUBLIC, method="POST", json=body
        )

    async def get_cart_info(self, cart_token: str) -> Any:
        return await self.request(f"/commerce/carts/{cart_token}/cart_info", ApiVariant.PUBLIC)

    async def process_checkout(self, cart_token: str, data: Optional[Dict[str, Any]] = None) -> Any:
        return await self.request(
            f"/commerce/carts/{cart_token}/checkout", ApiVariant.PUBLIC, method="POST", json=data or {}
        )

    async def record_checkout_started(self, cart_token: str) -> Any:
        return await self.request(
            f"/commerce/carts/{cart_token}/events",
            ApiVariant.PUBLIC,
            method="POST",
            json={"event": "checkout_started"},
        )

    # Refund and customer auth operations go through the configured gateways.

    async def find_refundable_order(self) -> Dict[str, Any]:
        return await self.refunds.find_refundable_order()

    async def initiate_refund(self, order_id: str, amount: Optional[str] = None) -> Dict[str, Any]:
        return await self.refunds.initiate_refund(order_id, amount=amount)

    async def process_refund(self, refund_id: str) -> Dict[str, Any]:
        return await self.refunds.process_refund(refund_id)

    async def get_refund_details(self, refund_id: str) -> Dict[str, Any]:
        return await self.refunds.get_refund_details(refund_id)

    async def register_customer(
        self, email: str, password: str, first_name: str, last_name: str
    ) -> Dict[str, Any]:
        return await self.auth.register_customer(email, password, first_name, last_name)

    async def login_customer(self, email: str, password: str) -> Dict[str, Any]:
        return await self.auth.login_customer(email, password)

    async def get_customer_profile(self, token: str) -> Dict[str, Any]:
        return await self.auth.get_customer_profile(token)

    async def logout_customer(self, token: str) -> Dict[str, Any]:
        return await self.auth.logout_customer(token)


def create_fluid_client(
    company_subdomain: str,
    auth_token: str,
    *,
    http_client: Optional[httpx.AsyncClient] = None,
) -> FluidApiClient:
    """Build a client configured from application settings."""
    return FluidApiClient(
        company_subdomain,
        auth_token,
        http_client=http_client,
        domain=settings.FLUID_DOMAIN,
        public_api_version=settings.FLUID_PUBLIC_API_VERSION,
        timeout=settings.FLUID_REQUEST_TIMEOUT,
        refund_mode=settings.FLUID_REFUND_MODE,
        auth_mode=settings.FLUID_AUTH_MODE,
        simulated_delay_scale=settings.SIMULATED_DELAY_SCALE,
    )
