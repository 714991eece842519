"""
Decoding of Fluid response payloads.

The Fluid endpoints are not consistent about where they put list data or the
cart token, so every caller decodes through these helpers instead of probing
field names inline. The priority orders below are the contract.
"""
from typing import Any, Dict, List, Optional, Sequence

from app.services.fluid.exceptions import FluidResponseError

# First key holding a list wins.
COLLECTION_KEYS: Sequence[str] = (
    "enrollment_packs",
    "enrollments",
    "packs",
    "products",
    "data",
)

CART_TOKEN_KEYS: Sequence[str] = ("cart_token", "token", "cartToken", "id")


def extract_collection(payload: Any, keys: Sequence[str] = COLLECTION_KEYS) -> List[Dict[str, Any]]:
    """
    Return the list of items carried by a paginated Fluid response.

    Accepts either a bare JSON array or an object wrapping the array under one
    of ``keys``. An object with none of the keys is an empty page.

    Raises:
        FluidResponseError: payload is neither a list nor an object, or an
            item in the list is not an object.
    """
    if isinstance(payload, list):
        items = payload
    elif isinstance(payload, dict):
        items = []
        for key in keys:
            value = payload.get(key)
            if isinstance(value, list):
                items = value
                break
    else:
        raise FluidResponseError(
            f"Expected a list or object payload, got {type(payload).__name__}"
        )

    for index, item in enumerate(items):
        if not isinstance(item, dict):
            raise FluidResponseError(
                f"Collection item {index} is {type(item).__name__}, expected an object"
            )
    return items


def extract_cart_token(payload: Any) -> str:
    """Return the cart token from a session payload."""
    if isinstance(payload, dict):
        for key in CART_TOKEN_KEYS:
            value = payload.get(key)
            if value:
                return str(value)
    raise FluidResponseError("No cart token returned from session creation")


def extract_order_reference(payload: Any) -> Dict[str, Optional[str]]:
    """Return ``orderId``/``orderToken`` from a checkout payload."""
    if not isinstance(payload, dict):
        raise FluidResponseError("Checkout response was not an object")
    order_id = payload.get("id") or payload.get("order_id")
    token = payload.get("token")
    return {
        "orderId": str(order_id) if order_id is not None else None,
        "orderToken": str(token) if token is not None else None,
    }
