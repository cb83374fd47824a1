"""
Tests for the Order entity: placement, totals, transitions, stock checks
and serialization.
"""

import uuid
from decimal import Decimal
from types import SimpleNamespace

import pytest

from orderhub.core.exceptions import (
    InsufficientStockError,
    InvalidStateTransitionError,
    OrderValidationError,
    ProductNotFoundError,
)
from orderhub.database.models.order import Order
from orderhub.services.identity.buyer import BuyerRef
from orderhub.services.orders.enums import OrderStatus
from orderhub.services.pricing.currency import Currency


def _stock(stock):
    return SimpleNamespace(stock_quantity=stock)


class TestOrderPlace:
    """Test Order.place."""

    def test_new_order_is_pending_with_initial_entry(self, make_order):
        order = make_order()

        assert order.status is OrderStatus.PENDING
        assert len(order.status_history) == 1

        entry = order.status_history[0]
        assert entry.status is OrderStatus.PENDING
        assert entry.previous_status is None
        assert entry.sequence == 0
        assert entry.reason == "Order created"
        assert entry.changed_by == "auth0|buyer-42"
        assert entry.changed_at == order.created_at

    def test_total_is_sum_of_lines(self, make_order):
        order = make_order(
            lines=[
                (uuid.uuid4(), 3, "100"),
                (uuid.uuid4(), 2, "12.50"),
                (uuid.uuid4(), 1, "0"),
            ]
        )

        assert order.total == Decimal("325.00")
        assert order.total == order.compute_total()

    def test_lines_keep_their_order(self, make_order):
        ids = [uuid.uuid4() for _ in range(3)]
        order = make_order(lines=[(pid, 1, "1") for pid in ids])

        assert [item.product_id for item in order.items] == ids
        assert [item.position for item in order.items] == [0, 1, 2]

    def test_buyer_refs_are_stored(self, make_order):
        internal_id = uuid.uuid4()
        order = make_order(
            buyer=BuyerRef(internal_id=internal_id, external_id="kc-77")
        )

        assert order.buyer_internal_id == internal_id
        assert order.buyer_external_id == "kc-77"
        assert order.buyer == BuyerRef(internal_id=internal_id, external_id="kc-77")

    def test_placed_by_overrides_buyer_in_history(self, delivery_address, make_order):
        template = make_order()
        order = Order.place(
            BuyerRef(external_id="auth0|buyer-42"),
            list(template.items),
            Currency.ARS,
            delivery_address,
            placed_by="admin|ops",
        )

        assert order.status_history[0].changed_by == "admin|ops"

    def test_empty_order_rejected(self, delivery_address):
        with pytest.raises(OrderValidationError):
            Order.place(
                BuyerRef(external_id="auth0|buyer-42"),
                [],
                Currency.ARS,
                delivery_address,
            )


class TestOrderTransition:
    """Test Order.transition."""

    def test_history_grows_by_one_per_transition(self, make_order):
        order = make_order()

        order.transition(OrderStatus.CONFIRMED, "admin|ops")
        order.transition(OrderStatus.SHIPPED, "admin|ops")

        assert len(order.status_history) == 3
        assert [e.sequence for e in order.status_history] == [0, 1, 2]
        assert order.current_status_from_history is order.status

    def test_earlier_entries_are_not_rewritten(self, make_order):
        order = make_order()
        first = order.status_history[0]
        snapshot = first.to_dict()

        order.transition(OrderStatus.CANCELLED, "auth0|buyer-42", "buyer request")

        assert order.status_history[0] is first
        assert first.to_dict() == snapshot

    def test_illegal_transition_changes_nothing(self, make_order):
        order = make_order()
        updated_at = order.updated_at

        with pytest.raises(InvalidStateTransitionError):
            order.transition(OrderStatus.DELIVERED, "admin|ops")

        assert order.status is OrderStatus.PENDING
        assert len(order.status_history) == 1
        assert order.updated_at == updated_at

    def test_transition_into_in_preparation_rejected(self, make_order):
        order = make_order()
        order.transition(OrderStatus.CONFIRMED, "admin|ops")

        with pytest.raises(InvalidStateTransitionError):
            order.transition(OrderStatus.IN_PREPARATION, "admin|ops")

    def test_flags(self, make_order):
        order = make_order()
        assert order.can_cancel and not order.is_terminal

        order.transition(OrderStatus.CANCELLED, "auth0|buyer-42")
        assert not order.can_cancel and order.is_terminal


class TestValidateStock:
    """Test Order.validate_stock."""

    def test_sufficient_stock(self, make_order):
        product_id = uuid.uuid4()
        order = make_order(lines=[(product_id, 3, "100")])

        order.validate_stock({product_id: _stock(3)})

    def test_insufficient_stock_names_product(self, make_order):
        product_id = uuid.uuid4()
        order = make_order(lines=[(product_id, 3, "100")])

        with pytest.raises(InsufficientStockError) as exc_info:
            order.validate_stock({product_id: _stock(2)})

        assert exc_info.value.product_id == product_id
        assert exc_info.value.requested == 3
        assert exc_info.value.available == 2

    def test_lines_of_same_product_are_added_up(self, make_order):
        product_id = uuid.uuid4()
        order = make_order(lines=[(product_id, 2, "1"), (product_id, 2, "1")])

        with pytest.raises(InsufficientStockError) as exc_info:
            order.validate_stock({product_id: _stock(3)})

        assert exc_info.value.requested == 4

    def test_missing_product(self, make_order):
        order = make_order()

        with pytest.raises(ProductNotFoundError):
            order.validate_stock({})


class TestOrderSerialization:
    """Test Order.to_dict and helpers."""

    def test_to_dict_shape(self, make_order, delivery_address):
        order = make_order(lines=[(uuid.uuid4(), 3, "100")], currency=Currency.USD)
        order.transition(OrderStatus.CONFIRMED, "admin|ops")

        data = order.to_dict()

        assert data["id"] == str(order.id)
        assert data["status"] == "confirmed"
        assert data["currency"] == "USD"
        assert data["total"] == "300"
        assert data["buyer_external_id"] == "auth0|buyer-42"
        assert data["delivery_address"] == delivery_address
        assert data["items"][0]["quantity"] == 3
        assert [e["status"] for e in data["status_history"]] == [
            "pending",
            "confirmed",
        ]
        assert data["can_cancel"] is True

    def test_short_id(self, make_order):
        order = make_order()

        assert order.short_id == order.id.hex[:8]
        assert len(order.short_id) == 8
