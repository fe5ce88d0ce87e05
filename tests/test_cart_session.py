"""
Tests for the client cart session across login and logout
"""
import json

import httpx
import pytest
import pytest_asyncio
from unittest.mock import AsyncMock

from client.cart_session import AnonymousCart, AuthenticatedCart, CartSession
from errors import CartError, CartNotFoundError, CartValidationError, MergeAbortedError, StorageUnavailableError
from microservices.local_cart import FileStorage, LocalCartCache


@pytest_asyncio.fixture
async def http(app):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client


@pytest.fixture
def session(http, tmp_path):
    return CartSession(http, LocalCartCache(FileStorage(tmp_path)))


class TestAnonymousSession:
    @pytest.mark.asyncio
    async def test_starts_anonymous(self, session):
        assert isinstance(session.state, AnonymousCart)
        assert session.items() == []
        assert session.totals() == (0, 0)

    @pytest.mark.asyncio
    async def test_add_increments_locally(self, session, rose):
        await session.add_item(**rose)
        await session.add_item(7, quantity=2)
        assert [(entry.product_id, entry.quantity) for entry in session.items()] == [(7, 3)]
        assert session.totals() == (3, 150)

    @pytest.mark.asyncio
    async def test_new_local_line_needs_snapshot(self, session):
        with pytest.raises(CartValidationError):
            await session.add_item(7, name_en="Rose")

    @pytest.mark.asyncio
    async def test_new_local_line_rejects_negative_price(self, session, rose):
        with pytest.raises(CartValidationError):
            await session.add_item(**dict(rose, price=-5))
        assert session.local_cache.load_raw() == []

    @pytest.mark.asyncio
    async def test_set_quantity_and_remove(self, session, rose, tulip):
        await session.add_item(**rose)
        await session.add_item(**tulip)
        await session.set_quantity(7, 4)
        assert session.totals() == (5, 220)
        await session.set_quantity(8, 0)
        assert [entry.product_id for entry in session.items()] == [7]
        with pytest.raises(CartNotFoundError):
            await session.set_quantity(8, 2)
        await session.remove_item(7)
        assert session.items() == []

    @pytest.mark.asyncio
    async def test_clear(self, session, rose):
        await session.add_item(**rose)
        await session.clear()
        assert session.items() == []

    @pytest.mark.asyncio
    async def test_local_cart_survives_new_session(self, http, tmp_path, rose):
        await CartSession(http, LocalCartCache(FileStorage(tmp_path))).add_item(**rose)
        restored = CartSession(http, LocalCartCache(FileStorage(tmp_path)))
        assert restored.totals() == (1, 50)


class TestLogin:
    @pytest.mark.asyncio
    async def test_login_merges_and_clears_local(self, session, cart_service, token_factory, rose, tulip):
        await cart_service.add_item("user-123", **rose, quantity=2)
        await session.add_item(**rose, quantity=3)
        await session.add_item(**tulip)

        cart = await session.login(token_factory())

        assert isinstance(session.state, AuthenticatedCart)
        assert {item.product_id: item.quantity for item in cart.items} == {7: 5, 8: 1}
        assert session.totals() == (6, 270)
        assert session.local_cache.load() == []
        assert session.last_report.merged == 2

    @pytest.mark.asyncio
    async def test_login_with_empty_local_cart_fetches_server_cart(self, session, cart_service, token_factory, rose):
        await cart_service.add_item("user-123", **rose)
        cart = await session.login(token_factory())
        assert cart.total_items == 1
        assert session.last_report is None

    @pytest.mark.asyncio
    async def test_login_twice_does_not_double_add(self, session, token_factory, rose):
        await session.add_item(**rose, quantity=2)
        await session.login(token_factory())
        cart = await session.login(token_factory())
        assert cart.total_items == 2

    @pytest.mark.asyncio
    async def test_authenticated_mutations_go_to_server(self, session, cart_service, token_factory, rose):
        await session.login(token_factory())
        await session.add_item(**rose)
        await session.set_quantity(7, 3)
        assert (await cart_service.get("user-123")).total_items == 3
        assert session.local_cache.load() == []
        await session.remove_item(7)
        assert session.totals() == (0, 0)

    @pytest.mark.asyncio
    async def test_server_errors_keep_their_kind(self, session, token_factory, rose):
        await session.login(token_factory())
        with pytest.raises(CartValidationError):
            await session.add_item(7, name_en="Rose")
        await session.add_item(**rose)
        with pytest.raises(CartNotFoundError):
            await session.set_quantity(99, 1)

    @pytest.mark.asyncio
    async def test_aborted_merge_keeps_remainder_and_stays_anonymous(
            self, session, cart_service, token_factory, rose, tulip):
        await session.add_item(**rose)
        await session.add_item(**tulip)
        cart_service.store.get_or_create = AsyncMock(side_effect=StorageUnavailableError("down"))

        with pytest.raises(MergeAbortedError) as exc_info:
            await session.login(token_factory())

        assert exc_info.value.status_code == 503
        assert isinstance(session.state, AnonymousCart)
        assert [entry.product_id for entry in session.local_cache.load()] == [7, 8]

    @pytest.mark.asyncio
    async def test_login_reports_unusable_stored_entries(self, session, token_factory, rose):
        ghost = {"product_id": 9, "name_en": "Ghost", "price": "free", "quantity": 1}
        session.local_cache.storage.set_item(session.local_cache.key, json.dumps([rose, ghost]))

        cart = await session.login(token_factory())

        assert [item.product_id for item in cart.items] == [7]
        assert [(entry.index, entry.product_id) for entry in session.last_report.skipped] == [(1, 9)]
        assert session.local_cache.load_raw() == []

    @pytest.mark.asyncio
    async def test_invalid_token_stays_anonymous(self, session, rose):
        await session.add_item(**rose)
        with pytest.raises(CartError) as exc_info:
            await session.login("not-a-token")
        assert exc_info.value.status_code == 401
        assert isinstance(session.state, AnonymousCart)
        assert len(session.local_cache.load()) == 1

    @pytest.mark.asyncio
    async def test_logout_returns_to_empty_local_cart(self, session, token_factory, rose):
        await session.add_item(**rose)
        await session.login(token_factory())
        session.logout()
        assert isinstance(session.state, AnonymousCart)
        assert session.items() == []


def test_error_from_response_kinds():
    from client.cart_api import error_from_response

    assert isinstance(error_from_response(400, {"message": "bad"}), CartValidationError)
    assert isinstance(error_from_response(404, {"message": "gone"}), CartNotFoundError)
    unknown = error_from_response(401, {"detail": "Access token required"})
    assert unknown.status_code == 401
    assert unknown.message == "Access token required"

    aborted = error_from_response(503, {"message": "Cart merge stopped after 1 item(s): down",
                                        "cause": "down", "merged": 1,
                                        "remaining": [{"product_id": 8, "quantity": 1}]})
    assert isinstance(aborted, MergeAbortedError)
    assert isinstance(aborted.cause, StorageUnavailableError)
    assert aborted.cause.message == "down"
    assert aborted.remaining[0]["product_id"] == 8
