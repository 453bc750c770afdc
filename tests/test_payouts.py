from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from models.order_item import ItemStatus
from models.payout import Payout, PayoutStatus
from services import payouts as payout_service
from services.exceptions import InvalidTransitionError, ValidationFailed
from services.order_lifecycle import update_item_status


@pytest.fixture
def funded_vendor(db, vendor):
    vendor.balance = Decimal("5000.00")
    vendor.bkash_number = "01712345678"
    db.commit()
    return vendor


class TestRequestPayout:
    """Payout requests are checked in a fixed order before money moves."""

    def test_request_deducts_balance(self, db, funded_vendor, mock_email_send):
        payout = payout_service.request_payout(db, funded_vendor, Decimal("1500"), "BKASH", "Weekly")
        assert payout.status == PayoutStatus.PENDING
        assert payout.account_details == "bKash 01712345678"
        assert funded_vendor.balance == Decimal("3500.00")
        assert mock_email_send[-1]["subject"] == "Payout request received"

    def test_amount_below_minimum(self, db, funded_vendor):
        with pytest.raises(ValidationFailed, match="Minimum payout amount"):
            payout_service.request_payout(db, funded_vendor, Decimal("999"), "BKASH")

    def test_balance_below_minimum(self, db, funded_vendor):
        funded_vendor.balance = Decimal("800.00")
        with pytest.raises(ValidationFailed, match="Minimum balance"):
            payout_service.request_payout(db, funded_vendor, Decimal("1000"), "BKASH")

    def test_amount_above_balance(self, db, funded_vendor):
        with pytest.raises(ValidationFailed, match="Insufficient balance"):
            payout_service.request_payout(db, funded_vendor, Decimal("6000"), "BKASH")
        assert funded_vendor.balance == Decimal("5000.00")

    def test_one_open_payout_at_a_time(self, db, funded_vendor):
        payout_service.request_payout(db, funded_vendor, Decimal("1000"), "BKASH")
        with pytest.raises(ValidationFailed, match="already have a pending payout"):
            payout_service.request_payout(db, funded_vendor, Decimal("1000"), "BKASH")

    def test_destination_required(self, db, funded_vendor):
        with pytest.raises(ValidationFailed, match="Bank details are required"):
            payout_service.request_payout(db, funded_vendor, Decimal("1000"), "BANK_TRANSFER")
        with pytest.raises(ValidationFailed, match="Nagad number is required"):
            payout_service.request_payout(db, funded_vendor, Decimal("1000"), "NAGAD")

    def test_minimum_from_settings(self, db, funded_vendor):
        from services import site_settings

        site_settings.update_settings(db, {"commission.minimumPayout": "200"})
        payout = payout_service.request_payout(db, funded_vendor, Decimal("250"), "BKASH")
        assert payout.amount == Decimal("250")


class TestPayoutLifecycle:
    def test_vendor_cancel_refunds(self, db, funded_vendor):
        payout = payout_service.request_payout(db, funded_vendor, Decimal("2000"), "BKASH")
        payout_service.cancel_payout(db, funded_vendor, payout.id)
        assert payout.status == PayoutStatus.CANCELLED
        assert funded_vendor.balance == Decimal("5000.00")

    def test_cancel_only_pending(self, db, funded_vendor):
        payout = payout_service.request_payout(db, funded_vendor, Decimal("2000"), "BKASH")
        payout_service.process_payout(db, payout, PayoutStatus.PROCESSING)
        with pytest.raises(InvalidTransitionError, match="Only pending payouts"):
            payout_service.cancel_payout(db, funded_vendor, payout.id)

    def test_failed_payout_refunds(self, db, funded_vendor, mock_email_send):
        payout = payout_service.request_payout(db, funded_vendor, Decimal("2000"), "BKASH")
        payout_service.process_payout(db, payout, PayoutStatus.PROCESSING)
        payout_service.process_payout(db, payout, PayoutStatus.FAILED, admin_note="Wallet rejected")
        assert funded_vendor.balance == Decimal("5000.00")
        assert payout.admin_note == "Wallet rejected"
        assert mock_email_send[-1]["subject"] == "Payout failed"

    def test_completed_keeps_deduction(self, db, funded_vendor):
        payout = payout_service.request_payout(db, funded_vendor, Decimal("2000"), "BKASH")
        payout_service.process_payout(db, payout, PayoutStatus.COMPLETED, reference="TXN-889")
        assert payout.completed_at is not None
        assert payout.processed_at is not None
        assert payout.reference == "TXN-889"
        assert funded_vendor.balance == Decimal("3000.00")
        with pytest.raises(InvalidTransitionError):
            payout_service.process_payout(db, payout, PayoutStatus.FAILED)


class TestEarnings:
    def test_report_splits_delivered_and_pending(self, db, vendor, make_order, bottle):
        delivered = make_order([(bottle, 4)])
        item = delivered.items[0]
        for status in (ItemStatus.PROCESSING, ItemStatus.SHIPPED, ItemStatus.DELIVERED):
            update_item_status(db, item, status)
        make_order([(bottle, 2)])
        db.commit()

        report = payout_service.earnings_report(db, vendor, period_days=7)
        assert report["period"]["revenue"] == Decimal("200.00")
        assert report["period"]["commission"] == Decimal("20.00")
        assert report["period"]["net"] == Decimal("180.00")
        assert report["pending"]["revenue"] == Decimal("100.00")
        assert report["pending"]["commission"] == Decimal("10.00")
        assert report["payouts"]["available"] == Decimal("180.00")
        assert len(report["chart"]) == 7
        assert report["chart"][-1]["revenue"] == Decimal("200.00")

    def test_old_deliveries_outside_period(self, db, vendor, make_order, bottle):
        order = make_order([(bottle, 4)])
        item = order.items[0]
        for status in (ItemStatus.PROCESSING, ItemStatus.SHIPPED, ItemStatus.DELIVERED):
            update_item_status(db, item, status)
        item.delivered_at = datetime.utcnow() - timedelta(days=40)
        db.commit()

        report = payout_service.earnings_report(db, vendor, period_days=30)
        assert report["period"]["revenue"] == Decimal("0.00")
        assert report["all_time"]["revenue"] == Decimal("200.00")

    def test_pending_commission_rounds_like_settlement(self, db, vendor, make_product, make_order):
        vendor.commission_rate = Decimal("15.00")
        db.commit()
        product = make_product(vendor.brands[0], "spring-odd", price="100.30")
        make_order([(product, 1)])

        report = payout_service.earnings_report(db, vendor, period_days=7)
        # 100.30 at 15% is 15.045
        assert report["pending"]["commission"] == Decimal("15.05")


class TestPayoutRoutes:
    def test_vendor_flow(self, client, db, funded_vendor, vendor_headers):
        resp = client.post("/vendor/payouts", json={"amount": 1200, "method": "BKASH"}, headers=vendor_headers)
        assert resp.status_code == 201
        payout_id = resp.json()["id"]

        listed = client.get("/vendor/payouts", headers=vendor_headers).json()
        assert listed["total"] == 1
        assert listed["balance"] == 3800.0
        assert listed["stats"]["pending"]["count"] == 1

        resp = client.post(f"/vendor/payouts/{payout_id}/cancel", headers=vendor_headers)
        assert resp.json()["status"] == "CANCELLED"

    def test_validation_error_is_400(self, client, funded_vendor, vendor_headers):
        resp = client.post("/vendor/payouts", json={"amount": 10, "method": "BKASH"}, headers=vendor_headers)
        assert resp.status_code == 400
        assert resp.json()["detail"] == "Minimum payout amount is ৳1000"

    def test_customer_forbidden(self, client, customer_headers):
        assert client.get("/vendor/payouts", headers=customer_headers).status_code == 403

    def test_admin_processes(self, client, db, funded_vendor, admin_headers):
        payout = payout_service.request_payout(db, funded_vendor, Decimal("1000"), "BKASH")
        db.commit()
        resp = client.patch(
            f"/admin/payouts/{payout.id}", json={"status": "FAILED", "admin_note": "Wrong number"}, headers=admin_headers
        )
        assert resp.status_code == 200
        db.refresh(funded_vendor)
        assert funded_vendor.balance == Decimal("5000.00")
        assert db.get(Payout, payout.id).status == PayoutStatus.FAILED

    def test_earnings_endpoint(self, client, funded_vendor, vendor_headers):
        resp = client.get("/vendor/earnings?period=14", headers=vendor_headers)
        assert resp.status_code == 200
        assert resp.json()["period_days"] == 14
        assert len(resp.json()["chart"]) == 14
