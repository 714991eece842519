"""
Purchase SDK capability used by the product purchase scenario.

When a purchase SDK is reachable the scenario drives a real add-to-cart and
verifies the cart; otherwise it falls back to validating catalog reachability.
"""
import asyncio
import logging
import time
from typing import TYPE_CHECKING, Any, Dict, Optional

import httpx

from app.services.fluid.exceptions import FluidError

if TYPE_CHECKING:
    from app.services.fluid.client import FluidApiClient

logger = logging.getLogger(__name__)


class PurchaseSdk:
    """Abstract base class for a cart-capable purchase SDK."""

    # Set once the SDK knows it will not become available this run
    unavailable = False

    async def is_available(self) -> bool:
        raise NotImplementedError

    async def add_to_cart(self, product_id: str, quantity: int = 1) -> Dict[str, Any]:
        raise NotImplementedError

    async def get_cart(self) -> Dict[str, Any]:
        raise NotImplementedError


class CommerceCartSdk(PurchaseSdk):
    """Purchase SDK backed by the public commerce cart endpoints."""

    def __init__(self, client: "FluidApiClient") -> None:
        self._client = client
        self._cart_token: Optional[str] = None
        self.unavailable = False

    @property
    def cart_token(self) -> Optional[str]:
        return self._cart_token

    async def is_available(self) -> bool:
        if self._cart_token:
            return True
        if self.unavailable:
            return False
        try:
            session = await self._client.create_session()
        except (FluidError, httpx.HTTPError) as exc:
            logger.info("Purchase SDK session could not be created: %s", exc)
            self.unavailable = True
            return False
        self._cart_token = session.cart_token
        return True

    async def add_to_cart(self, product_id: str, quantity: int = 1) -> Dict[str, Any]:
        if not self._cart_token:
            raise RuntimeError("Purchase SDK is not initialised")
        cart = await self._client.add_to_cart(self._cart_token, product_id, quantity=quantity)
        return cart if isinstance(cart, dict) else {"cart": cart}

    async def get_cart(self) -> Dict[str, Any]:
        if not self._cart_token:
            raise RuntimeError("Purchase SDK is not initialised")
        cart = await self._client.get_cart_info(self._cart_token)
        return cart if isinstance(cart, dict) else {"cart": cart}


async def wait_for_sdk(
    sdk: Optional[PurchaseSdk],
    timeout: float,
    poll_interval: float = 0.25,
) -> bool:
    """Poll ``sdk`` until it reports availability or ``timeout`` seconds pass."""
    if sdk is None:
        return False

    deadline = time.monotonic() + max(timeout, 0.0)
    while not sdk.unavailable:
        try:
            if await sdk.is_available():
                return True
        except Exception as exc:
            logger.debug("Purchase SDK availability check failed: %s", exc)
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            logger.info("Purchase SDK not available after %.2fs", timeout)
            return False
        await asyncio.sleep(min(poll_interval, remaining))
    logger.info("Purchase SDK reported itself unavailable")
    return False
