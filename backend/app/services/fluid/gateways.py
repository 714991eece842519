"""
Refund and customer-auth capabilities.

Fluid does not expose refund or customer-auth endpoints to droplets, so each
capability has two implementations: a simulated one that fakes plausible
payloads after an artificial delay, and an HTTP one for platforms that do
expose the endpoints. ``FLUID_REFUND_MODE`` / ``FLUID_AUTH_MODE`` pick one.
"""
import asyncio
import logging
import random
import string
import time
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Any, Dict, Optional, Tuple

if TYPE_CHECKING:
    from app.services.fluid.client import FluidApiClient

logger = logging.getLogger(__name__)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _synthetic_id(prefix: str) -> str:
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=9))
    return f"{prefix}_{int(time.time() * 1000)}_{suffix}"


class GatewayConfigurationError(Exception):
    """Raised when an unknown gateway mode is requested."""


class RefundGateway:
    """Abstract base class for refund operations."""

    async def find_refundable_order(self) -> Dict[str, Any]:
        raise NotImplementedError

    async def initiate_refund(self, order_id: str, amount: Optional[str] = None) -> Dict[str, Any]:
        raise NotImplementedError

    async def process_refund(self, refund_id: str) -> Dict[str, Any]:
        raise NotImplementedError

    async def get_refund_details(self, refund_id: str) -> Dict[str, Any]:
        raise NotImplementedError


class AuthGateway:
    """Abstract base class for customer authentication operations."""

    async def register_customer(
        self, email: str, password: str, first_name: str, last_name: str
    ) -> Dict[str, Any]:
        raise NotImplementedError

    async def login_customer(self, email: str, password: str) -> Dict[str, Any]:
        raise NotImplementedError

    async def get_customer_profile(self, token: str) -> Dict[str, Any]:
        raise NotImplementedError

    async def logout_customer(self, token: str) -> Dict[str, Any]:
        raise NotImplementedError


class _SimulatedDelayMixin:
    delay_scale: float = 1.0

    async def _simulate(self, operation: str, delay_range: Tuple[float, float]) -> None:
        logger.warning("%s: using simulated response (endpoint not exposed by Fluid)", operation)
        low, high = delay_range
        delay = random.uniform(low, high) * self.delay_scale
        if delay > 0:
            await asyncio.sleep(delay)


class SimulatedRefundGateway(_SimulatedDelayMixin, RefundGateway):
    """SIMULATION: fabricates refund payloads; no request reaches Fluid."""

    def __init__(self, delay_scale: float = 1.0) -> None:
        self.delay_scale = delay_scale

    async def find_refundable_order(self) -> Dict[str, Any]:
        return {"orderId": _synthetic_id("order"), "simulated": True}

    async def initiate_refund(self, order_id: str, amount: Optional[str] = None) -> Dict[str, Any]:
        await self._simulate("initiate_refund", (0.4, 0.6))
        return {
            "id": _synthetic_id("refund"),
            "orderId": order_id,
            "amount": amount or "full",
            "status": "pending",
            "created_at": _now_iso(),
        }

    async def process_refund(self, refund_id: str) -> Dict[str, Any]:
        await self._simulate("process_refund", (0.5, 0.8))
        return {"id": refund_id, "status": "processing", "processed_at": _now_iso()}

    async def get_refund_details(self, refund_id: str) -> Dict[str, Any]:
        await self._simulate("get_refund_details", (0.2, 0.35))
        return {"id": refund_id, "status": "completed", "completed_at": _now_iso()}


class SimulatedAuthGateway(_SimulatedDelayMixin, AuthGateway):
    """SIMULATION: fabricates customer/auth payloads; no request reaches Fluid."""

    def __init__(self, delay_scale: float = 1.0) -> None:
        self.delay_scale = delay_scale

    async def register_customer(
        self, email: str, password: str, first_name: str, last_name: str
    ) -> Dict[str, Any]:
        await self._simulate("register_customer", (0.4, 0.65))
        return {
            "id": _synthetic_id("cust"),
            "email": email,
            "firstName": first_name,
            "lastName": last_name,
            "created_at": _now_iso(),
        }

    async def login_customer(self, email: str, password: str) -> Dict[str, Any]:
        await self._simulate("login_customer", (0.35, 0.55))
        expires_at = datetime.now(timezone.utc) + timedelta(hours=24)
        return {
            "token": _synthetic_id("token"),
            "email": email,
            "expires_at": expires_at.isoformat(),
        }

    async def get_customer_profile(self, token: str) -> Dict[str, Any]:
        await self._simulate("get_customer_profile", (0.25, 0.4))
        # Profile id follows the token so repeated lookups agree
        customer_ref = token.split("_")[1] if "_" in token else str(int(time.time() * 1000))
        return {
            "id": f"cust_{customer_ref}",
            "email": "test@example.com",
            "firstName": "Test",
            "lastName": "User",
            "created_at": _now_iso(),
        }

    async def logout_customer(self, token: str) -> Dict[str, Any]:
        await self._simulate("logout_customer", (0.2, 0.3))
        return {"success": True, "message": "Logged out successfully"}


class HttpRefundGateway(RefundGateway):
    """Refund operations against the company v1 API."""

    def __init__(self, client: "FluidApiClient") -> None:
        self._client = client

    async def find_refundable_order(self) -> Dict[str, Any]:
        orders = await self._client.get_orders(page=1, per_page=1)
        if not orders:
            raise LookupError("No orders available to refund")
        return {"orderId": str(orders[0].get("id"))}

    async def initiate_refund(self, order_id: str, amount: Optional[str] = None) -> Dict[str, Any]:
        body = {"refund": {"amount": amount or "full"}}
        return await self._client.request(f"/orders/{order_id}/refunds", method="POST", json=body)

    async def process_refund(self, refund_id: str) -> Dict[str, Any]:
        return await self._client.request(f"/refunds/{refund_id}/process", method="POST", json={})

    async def get_refund_details(self, refund_id: str) -> Dict[str, Any]:
        return await self._client.request(f"/refunds/{refund_id}")


class HttpAuthGateway(AuthGateway):
    """Customer auth operations against the company v1 API."""

    def __init__(self, client: "FluidApiClient") -> None:
        self._client = client

    async def register_customer(
        self, email: str, password: str, first_name: str, last_name: str
    ) -> Dict[str, Any]:
        body = {
            "customer": {
                "email": email,
                "password": password,
                "first_name": first_name,
                "last_name": last_name,
            }
        }
        return await self._client.request("/customers", method="POST", json=body)

    async def login_customer(self, email: str, password: str) -> Dict[str, Any]:
        return await self._client.request(
            "/customers/login", method="POST", json={"email": email, "password": password}
        )

    async def get_customer_profile(self, token: str) -> Dict[str, Any]:
        return await self._client.request("/customers/me", headers={"X-Customer-Token": token})

    async def logout_customer(self, token: str) -> Dict[str, Any]:
        return await self._client.request(
            "/customers/logout", method="POST", json={}, headers={"X-Customer-Token": token}
        )


def build_refund_gateway(mode: str, client: "FluidApiClient", *, delay_scale: float = 1.0) -> RefundGateway:
    if mode == "simulated":
        return SimulatedRefundGateway(delay_scale=delay_scale)
    if mode == "http":
        return HttpRefundGateway(client)
    raise GatewayConfigurationError(f"Unknown refund gateway mode: {mode}")


def build_auth_gateway(mode: str, client: "FluidApiClient", *, delay_scale: float = 1.0) -> AuthGateway:
    if mode == "simulated":
        return SimulatedAuthGateway(delay_scale=delay_scale)
    if mode == "http":
        return HttpAuthGateway(client)
    raise GatewayConfigurationError(f"Unknown auth gateway mode: {mode}")
