from app.services.fluid.client import ApiVariant, CartSession, FluidApiClient, create_fluid_client
from app.services.fluid.exceptions import FluidApiError, FluidError, FluidResponseError
from app.services.fluid.gateways import (
    AuthGateway,
    HttpAuthGateway,
    HttpRefundGateway,
    RefundGateway,
    SimulatedAuthGateway,
    SimulatedRefundGateway,
)
from app.services.fluid.responses import extract_cart_token, extract_collection, extract_order_reference
from app.services.fluid.sdk import CommerceCartSdk, PurchaseSdk, wait_for_sdk

__all__ = [
    "ApiVariant",
    "CartSession",
    "FluidApiClient",
    "create_fluid_client",
    "FluidError",
    "FluidApiError",
    "FluidResponseError",
    "RefundGateway",
    "AuthGateway",
    "SimulatedRefundGateway",
    "SimulatedAuthGateway",
    "HttpRefundGateway",
    "HttpAuthGateway",
    "extract_collection",
    "extract_cart_token",
    "extract_order_reference",
    "PurchaseSdk",
    "CommerceCartSdk",
    "wait_for_sdk",
]
