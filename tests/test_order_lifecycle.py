from decimal import Decimal

import pytest

from models.order import Order, OrderStatus, PaymentStatus, JarDeposit
from models.order_item import OrderItem, ItemStatus
from services import order_lifecycle as lifecycle
from services.exceptions import InvalidTransitionError


def _item(db, order: Order, product) -> OrderItem:
    return next(i for i in order.items if i.product_id == product.id)


class TestItemTransitions:
    """The per-item state machine."""

    @pytest.mark.parametrize(
        "current,target",
        [
            ("PENDING", "CONFIRMED"),
            ("PENDING", "PROCESSING"),
            ("PENDING", "CANCELLED"),
            ("CONFIRMED", "PROCESSING"),
            ("PROCESSING", "SHIPPED"),
            ("SHIPPED", "DELIVERED"),
            ("SHIPPED", "RETURNED"),
        ],
    )
    def test_allowed(self, current, target):
        assert lifecycle.can_transition_item(current, target)

    @pytest.mark.parametrize(
        "current,target",
        [
            ("PENDING", "SHIPPED"),
            ("PENDING", "DELIVERED"),
            ("SHIPPED", "CANCELLED"),
            ("DELIVERED", "RETURNED"),
            ("CANCELLED", "PENDING"),
            ("RETURNED", "SHIPPED"),
        ],
    )
    def test_rejected(self, current, target):
        assert not lifecycle.can_transition_item(current, target)

    def test_invalid_transition_raises_with_message(self, make_order, bottle):
        order = make_order([(bottle, 2)])
        item = order.items[0]
        with pytest.raises(InvalidTransitionError) as exc:
            lifecycle.transition_item(item, ItemStatus.DELIVERED)
        assert exc.value.message == "Cannot transition from PENDING to DELIVERED"

    def test_shipped_stamps_timestamp(self, db, make_order, bottle):
        order = make_order([(bottle, 2)])
        item = order.items[0]
        lifecycle.update_item_status(db, item, ItemStatus.PROCESSING)
        lifecycle.update_item_status(db, item, ItemStatus.SHIPPED)
        assert item.shipped_at is not None
        assert item.delivered_at is None


class TestOrderAggregation:
    """Order status derived from multi-vendor items."""

    def test_processing_when_any_item_confirmed(self, db, make_order, make_vendor, make_product, bottle):
        other = make_vendor("Blue Peak")
        other_bottle = make_product(other.brands[0], "blue-peak-500ml", price="30.00")
        order = make_order([(bottle, 2), (other_bottle, 2)])

        lifecycle.update_item_status(db, _item(db, order, bottle), ItemStatus.CONFIRMED)
        assert order.status == OrderStatus.PROCESSING
        assert order.history[-1].status == OrderStatus.PROCESSING

    def test_shipped_when_one_vendor_ships(self, db, make_order, make_vendor, make_product, bottle):
        other = make_vendor("Blue Peak")
        other_bottle = make_product(other.brands[0], "blue-peak-500ml", price="30.00")
        order = make_order([(bottle, 2), (other_bottle, 2)])
        first = _item(db, order, bottle)

        lifecycle.update_item_status(db, first, ItemStatus.PROCESSING)
        lifecycle.update_item_status(db, first, ItemStatus.SHIPPED)
        assert order.status == OrderStatus.SHIPPED
        assert order.shipped_at is not None

    def test_delivered_only_when_all_live_items_delivered(self, db, make_order, make_vendor, make_product, bottle):
        other = make_vendor("Blue Peak")
        other_bottle = make_product(other.brands[0], "blue-peak-500ml", price="30.00")
        order = make_order([(bottle, 2), (other_bottle, 2)])
        first, second = _item(db, order, bottle), _item(db, order, other_bottle)

        for status in (ItemStatus.PROCESSING, ItemStatus.SHIPPED, ItemStatus.DELIVERED):
            lifecycle.update_item_status(db, first, status)
        assert order.status == OrderStatus.SHIPPED

        lifecycle.update_item_status(db, second, ItemStatus.CANCELLED)
        assert order.status == OrderStatus.DELIVERED
        assert order.delivered_at is not None

    def test_all_items_cancelled_cancels_order(self, db, make_order, bottle):
        order = make_order([(bottle, 2)])
        lifecycle.update_item_status(db, order.items[0], ItemStatus.CANCELLED)
        assert order.status == OrderStatus.CANCELLED
        assert order.cancelled_at is not None

    def test_pending_items_keep_paid_status(self, db, make_order, bottle):
        order = make_order([(bottle, 2)])
        lifecycle.mark_order_paid(db, order)
        assert order.status == OrderStatus.PAID
        assert lifecycle.derive_order_status(order) == OrderStatus.PAID

    def test_cancelled_order_items_are_frozen(self, db, make_order, bottle):
        order = make_order([(bottle, 2)])
        lifecycle.cancel_order(db, order, "changed my mind")
        with pytest.raises(InvalidTransitionError, match="Order has been cancelled"):
            lifecycle.update_item_status(db, order.items[0], ItemStatus.PROCESSING)

    def test_unpaid_online_order_cannot_progress(self, db, make_order, bottle):
        order = make_order([(bottle, 2)], payment_method="ONLINE")
        with pytest.raises(InvalidTransitionError, match="Order is awaiting payment"):
            lifecycle.update_item_status(db, order.items[0], ItemStatus.PROCESSING)
        # cancelling is still possible
        lifecycle.update_item_status(db, order.items[0], ItemStatus.CANCELLED)
        assert order.status == OrderStatus.CANCELLED


class TestSettlement:
    """Commission and vendor balance at delivery."""

    def _deliver(self, db, item):
        for status in (ItemStatus.PROCESSING, ItemStatus.SHIPPED, ItemStatus.DELIVERED):
            lifecycle.update_item_status(db, item, status)

    def test_commission_credited_once(self, db, make_order, bottle, vendor):
        order = make_order([(bottle, 4)])
        item = order.items[0]
        self._deliver(db, item)

        # 4 x 50 = 200, 10% commission
        assert item.commission_amount == Decimal("20.00")
        assert item.vendor_amount == Decimal("180.00")
        assert vendor.balance == Decimal("180.00")
        assert item.delivered_at is not None

        with pytest.raises(InvalidTransitionError):
            lifecycle.update_item_status(db, item, ItemStatus.DELIVERED)
        assert vendor.balance == Decimal("180.00")

    def test_commission_uses_vendor_rate(self, db, make_order, make_vendor, make_product):
        premium = make_vendor("Glacier Co", commission_rate="12.50")
        product = make_product(premium.brands[0], "glacier-2l", price="99.99")
        order = make_order([(product, 3)])
        self._deliver(db, order.items[0])

        # 299.97 * 12.5% = 37.49625 -> 37.50
        assert order.items[0].commission_amount == Decimal("37.50")
        assert order.items[0].vendor_amount == Decimal("262.47")
        assert premium.balance == Decimal("262.47")

    def test_platform_item_without_vendor(self, db, make_order, make_product, bottle):
        from models.brand import Brand

        house = Brand(name="Paaniyo Select", slug="paaniyo-select", is_active=True)
        db.add(house)
        db.commit()
        product = make_product(house, "select-1l", price="40.00")
        order = make_order([(product, 3)])
        item = order.items[0]
        assert item.vendor_id is None

        self._deliver(db, item)
        assert item.commission_amount == Decimal("120.00")
        assert item.vendor_amount == Decimal("0.00")

    def test_cod_order_marked_paid_on_delivery(self, db, make_order, bottle):
        order = make_order([(bottle, 2)])
        assert order.payment_status == PaymentStatus.PENDING
        self._deliver(db, order.items[0])
        assert order.payment_status == PaymentStatus.PAID
        assert order.paid_at is not None


class TestStock:
    def test_checkout_decrements_stock(self, db, make_order, bottle):
        make_order([(bottle, 5)])
        assert bottle.stock == 95
        assert bottle.sold_count == 5

    def test_cancel_restores_stock(self, db, make_order, bottle, jar):
        order = make_order([(bottle, 5), (jar, 2)])
        assert (bottle.stock, jar.stock) == (95, 98)

        lifecycle.cancel_order(db, order, "Customer request")
        assert (bottle.stock, jar.stock) == (100, 100)
        assert all(i.status == ItemStatus.CANCELLED for i in order.items)
        assert order.status == OrderStatus.CANCELLED
        assert order.history[-1].note == "Customer request"

    def test_cancel_releases_jar_deposits(self, db, make_order, jar):
        order = make_order([(jar, 2, 0)])
        lifecycle.cancel_order(db, order)
        db.flush()
        deposits = db.query(JarDeposit).filter(JarDeposit.order_id == order.id).all()
        assert deposits and all(d.status == "CANCELLED" for d in deposits)

    def test_return_restores_stock(self, db, make_order, bottle):
        order = make_order([(bottle, 3)])
        item = order.items[0]
        lifecycle.mark_order_paid(db, order)
        lifecycle.update_item_status(db, item, ItemStatus.PROCESSING)
        lifecycle.update_item_status(db, item, ItemStatus.SHIPPED)
        lifecycle.update_item_status(db, item, ItemStatus.RETURNED)
        assert bottle.stock == 100
        assert order.status == OrderStatus.CANCELLED

    def test_cannot_cancel_processing_order(self, db, make_order, bottle):
        order = make_order([(bottle, 2)])
        lifecycle.update_item_status(db, order.items[0], ItemStatus.PROCESSING)
        with pytest.raises(InvalidTransitionError, match="already being processed"):
            lifecycle.cancel_order(db, order)
        assert bottle.stock == 98


class TestAdminOrderStatus:
    """Order-level overrides cascade to items."""

    def test_set_paid(self, db, make_order, bottle):
        order = make_order([(bottle, 2)], payment_method="ONLINE")
        lifecycle.set_order_status(db, order, OrderStatus.PAID)
        assert order.status == OrderStatus.PAID
        assert order.payment_status == PaymentStatus.PAID
        assert order.paid_at is not None

    def test_cascade_to_delivered_walks_items_forward(self, db, make_order, bottle, vendor):
        order = make_order([(bottle, 2)])
        lifecycle.set_order_status(db, order, OrderStatus.PROCESSING)
        lifecycle.set_order_status(db, order, OrderStatus.SHIPPED)
        lifecycle.set_order_status(db, order, OrderStatus.DELIVERED)

        item = order.items[0]
        assert item.status == ItemStatus.DELIVERED
        assert item.shipped_at is not None
        assert vendor.balance == Decimal("90.00")
        assert [h.status for h in order.history] == ["PENDING", "PROCESSING", "SHIPPED", "DELIVERED"]

    def test_shipped_from_pending_not_allowed(self, db, make_order, bottle):
        order = make_order([(bottle, 2)])
        with pytest.raises(InvalidTransitionError, match="Cannot transition from PENDING to SHIPPED"):
            lifecycle.set_order_status(db, order, OrderStatus.SHIPPED)

    def test_admin_can_cancel_processing_order(self, db, make_order, bottle):
        order = make_order([(bottle, 2)])
        lifecycle.set_order_status(db, order, OrderStatus.PROCESSING)
        lifecycle.set_order_status(db, order, OrderStatus.CANCELLED, note="Out of delivery area")
        assert order.status == OrderStatus.CANCELLED
        assert bottle.stock == 100

    def test_status_emails_sent(self, db, make_order, bottle, mock_email_send):
        order = make_order([(bottle, 2)])
        mock_email_send.clear()
        lifecycle.set_order_status(db, order, OrderStatus.PROCESSING)
        lifecycle.set_order_status(db, order, OrderStatus.SHIPPED)
        subjects = [m["subject"] for m in mock_email_send]
        assert subjects == [f"Order {order.order_number} shipped"]
