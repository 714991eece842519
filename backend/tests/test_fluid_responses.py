import pytest

from app.services.fluid import (
    FluidResponseError,
    extract_cart_token,
    extract_collection,
    extract_order_reference,
)


def test_extract_collection_accepts_bare_list():
    assert extract_collection([{"id": 1}]) == [{"id": 1}]


@pytest.mark.parametrize(
    "payload,expected",
    [
        ({"enrollment_packs": [{"id": 1}], "products": [{"id": 2}]}, [{"id": 1}]),
        ({"enrollments": [{"id": 3}], "data": [{"id": 4}]}, [{"id": 3}]),
        ({"packs": [{"id": 5}], "products": [{"id": 6}]}, [{"id": 5}]),
        ({"products": [{"id": 7}], "data": [{"id": 8}]}, [{"id": 7}]),
        ({"data": [{"id": 9}]}, [{"id": 9}]),
    ],
)
def test_extract_collection_follows_key_priority(payload, expected):
    assert extract_collection(payload) == expected


def test_extract_collection_skips_keys_that_are_not_lists():
    assert extract_collection({"products": None, "data": [{"id": 1}]}) == [{"id": 1}]


def test_extract_collection_without_known_key_is_empty_page():
    assert extract_collection({"meta": {"page": 3}}) == []


@pytest.mark.parametrize("payload", ["products", 42, None])
def test_extract_collection_rejects_scalar_payloads(payload):
    with pytest.raises(FluidResponseError):
        extract_collection(payload)


def test_extract_collection_rejects_non_object_items():
    with pytest.raises(FluidResponseError, match="Collection item 1"):
        extract_collection({"products": [{"id": 1}, "oops"]})


@pytest.mark.parametrize(
    "payload,expected",
    [
        ({"cart_token": "a", "token": "b"}, "a"),
        ({"token": "b", "cartToken": "c"}, "b"),
        ({"cartToken": "c", "id": 4}, "c"),
        ({"id": 4}, "4"),
    ],
)
def test_extract_cart_token_priority(payload, expected):
    assert extract_cart_token(payload) == expected


def test_extract_cart_token_missing():
    with pytest.raises(FluidResponseError, match="No cart token returned from session creation"):
        extract_cart_token({"cart_token": ""})


def test_extract_order_reference():
    assert extract_order_reference({"order_id": 12, "token": "t"}) == {"orderId": "12", "orderToken": "t"}
    assert extract_order_reference({}) == {"orderId": None, "orderToken": None}
