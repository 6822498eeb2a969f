# Overview: Pytest coverage for the sale lifecycle: save, complete, finalize, cancel.

"""
Sale Lifecycle Tests

Covers saving BUDGET/PENDING sales, completion (discount redistribution,
stock re-check and decrement, atomic vs legacy per-line commits),
cashier finalization and cancellation with stock restoration.
"""

import logging
from decimal import Decimal

import pytest
import sqlalchemy as sa
from sqlalchemy.exc import OperationalError

from salesdesk.errors import (
    AlreadyCompleted,
    AuthorizationRequired,
    ExceedsRemaining,
    InsufficientStock,
    InvalidTransition,
    NotFound,
    PaymentMismatch,
    ProductNotFound,
    RoleNotAllowed,
    StoreError,
    ValidationError,
)
from salesdesk.extensions import db
from salesdesk.models import (
    Product,
    SALE_STATUS_BUDGET,
    SALE_STATUS_CANCELLED,
    SALE_STATUS_COMPLETED,
    SALE_STATUS_PENDING,
)
from salesdesk.services import payment_service, sales_service, store_gateway
from salesdesk.services.cart_service import Cart, SaleItem


def set_stock(product, stock):
    """Change stored stock behind the session's back (another terminal)."""
    db.session.connection().execute(
        sa.update(Product.__table__).where(Product.__table__.c.id == product.id).values(stock=stock)
    )
    db.session.commit()


class TestSaveSale:
    def test_pending_sale_snapshot(self, db_session, make_product, salesperson, seller):
        product_a = make_product("Product A", price="10.00", stock=5)
        cart, _ = sales_service.build_cart({
            "items": [{"product_id": product_a.id, "quantity": 2}],
            "freight": "3.00",
            "payments": {"cash": "23.00"},
        })

        sale = sales_service.save_sale(
            cart,
            seller_id=salesperson.id,
            salesperson_id=seller.id,
            client_name="  ",
            observation="Deliver after 5pm",
        )

        assert sale.status == SALE_STATUS_PENDING
        assert sale.total_value == Decimal("23.00")
        assert sale.client_name == "FINAL CONSUMER"
        assert sale.seller_id == salesperson.id
        assert sale.seller_name == salesperson.name
        assert sale.salesperson_name == seller.name
        assert sale.observation == "Deliver after 5pm"
        assert sale.payments["cash"] == 23.0
        assert sale.items[0]["quantity"] == 2
        assert sale.finished_at is None

    def test_saving_does_not_touch_stock(self, db_session, make_product, make_sale, stock_of):
        product_a = make_product("Product A", stock=5)
        make_sale([(product_a, 2)])
        assert stock_of(product_a) == 5

    def test_budget_skips_payment_check(self, db_session, make_product, make_sale):
        product_a = make_product("Product A")
        sale = make_sale([(product_a, 1)], as_budget=True)
        assert sale.status == SALE_STATUS_BUDGET

    def test_pending_requires_settled_payments(self, db_session, make_product, salesperson, seller):
        product_a = make_product("Product A")
        cart, _ = sales_service.build_cart({"items": [{"product_id": product_a.id, "quantity": 1}]})

        with pytest.raises(PaymentMismatch):
            sales_service.save_sale(cart, seller_id=salesperson.id, salesperson_id=seller.id)

        payment_service.set_amount(cart, "cash", "9.00")
        with pytest.raises(PaymentMismatch) as exc:
            sales_service.save_sale(cart, seller_id=salesperson.id, salesperson_id=seller.id)
        assert exc.value.difference == 1.0

    def test_empty_cart_rejected(self, db_session, salesperson, seller):
        with pytest.raises(ValidationError):
            sales_service.save_sale(Cart(), seller_id=salesperson.id, salesperson_id=seller.id, as_budget=True)

    def test_salesperson_required(self, db_session, make_product, salesperson):
        product_a = make_product("Product A")
        cart, _ = sales_service.build_cart({"items": [{"product_id": product_a.id, "quantity": 1}]})
        with pytest.raises(ValidationError):
            sales_service.save_sale(cart, seller_id=salesperson.id, salesperson_id=None, as_budget=True)

    def test_inactive_salesperson_rejected(self, db_session, make_product, salesperson, seller):
        seller.active = False
        db_session.commit()
        product_a = make_product("Product A")
        cart, _ = sales_service.build_cart({"items": [{"product_id": product_a.id, "quantity": 1}]})
        with pytest.raises(ValidationError):
            sales_service.save_sale(cart, seller_id=salesperson.id, salesperson_id=seller.id, as_budget=True)

    def test_cashier_cannot_create_sales(self, db_session, make_product, cashier, seller):
        product_a = make_product("Product A")
        cart, _ = sales_service.build_cart({"items": [{"product_id": product_a.id, "quantity": 1}]})
        with pytest.raises(RoleNotAllowed):
            sales_service.save_sale(cart, seller_id=cashier.id, salesperson_id=seller.id, as_budget=True)

    def test_unknown_detail_field_rejected(self, db_session, make_product, salesperson, seller):
        product_a = make_product("Product A")
        cart, _ = sales_service.build_cart({"items": [{"product_id": product_a.id, "quantity": 1}]})
        with pytest.raises(ValidationError):
            sales_service.save_sale(
                cart, seller_id=salesperson.id, salesperson_id=seller.id, as_budget=True, status="COMPLETED",
            )

    def test_update_budget_to_pending(self, db_session, make_product, make_sale, salesperson, seller):
        product_a = make_product("Product A", stock=5)
        sale = make_sale([(product_a, 1)], as_budget=True)

        cart, _ = sales_service.build_cart({
            "items": [{"product_id": product_a.id, "quantity": 3}],
            "payments": {"pix": "30.00"},
        })
        updated = sales_service.save_sale(cart, seller_id=salesperson.id, salesperson_id=seller.id, sale_id=sale.id)

        assert updated.id == sale.id
        assert updated.status == SALE_STATUS_PENDING
        assert updated.total_value == Decimal("30.00")
        assert updated.items[0]["quantity"] == 3

    def test_update_of_completed_sale_rejected(self, db_session, make_product, make_sale, cashier, salesperson, seller):
        product_a = make_product("Product A", stock=5)
        sale = make_sale([(product_a, 1)])
        sales_service.complete_sale(sale.id, cashier.id)

        cart, _ = sales_service.build_cart({"items": [{"product_id": product_a.id, "quantity": 1}]})
        with pytest.raises(InvalidTransition):
            sales_service.save_sale(
                cart, seller_id=salesperson.id, salesperson_id=seller.id, as_budget=True, sale_id=sale.id,
            )

    def test_update_unknown_sale(self, db_session, make_product, salesperson, seller):
        product_a = make_product("Product A")
        cart, _ = sales_service.build_cart({"items": [{"product_id": product_a.id, "quantity": 1}]})
        with pytest.raises(NotFound):
            sales_service.save_sale(cart, seller_id=salesperson.id, salesperson_id=seller.id, as_budget=True, sale_id=999)


class TestBuildCart:
    def test_unit_price_edit_goes_through_floor(self, db_session, make_product):
        product_a = make_product("Product A", price="10.00")
        cart, notices = sales_service.build_cart({
            "items": [{"product_id": product_a.id, "quantity": 1, "unit_price": "5.00"}],
        })
        assert cart.items[0].unit_price == Decimal("9.40")
        assert cart.items[0].original_price == Decimal("10.00")
        assert len(notices) == 1

    def test_unknown_product(self, db_session):
        with pytest.raises(ProductNotFound):
            sales_service.build_cart({"items": [{"product_id": 999, "quantity": 1}]})

    def test_stock_checked_when_building(self, db_session, make_product):
        product_a = make_product("Product A", stock=1)
        with pytest.raises(InsufficientStock):
            sales_service.build_cart({"items": [{"product_id": product_a.id, "quantity": 2}]})

    def test_payment_over_total_rejected(self, db_session, make_product):
        product_a = make_product("Product A")
        with pytest.raises(ExceedsRemaining):
            sales_service.build_cart({
                "items": [{"product_id": product_a.id, "quantity": 1}],
                "payments": {"cash": "10.01"},
            })


class TestCompleteSale:
    def test_completed_lines_add_up_to_total_value(self, db_session, make_product, make_sale, cashier):
        products = [make_product(f"Product {n}", price="3.33", stock=5) for n in "ABC"]
        sale = make_sale([(product, 1) for product in products], discount="1.00", token="abcd")

        completed = sales_service.complete_sale(sale.id, cashier.id)

        line_sum = sum(Decimal(str(rec["total"])) for rec in completed.items)
        assert completed.total_value == Decimal("8.99")
        assert line_sum == Decimal("8.99")
        assert completed.discount == Decimal("0")

    def test_scenario_simple_completion(self, db_session, make_product, make_sale, cashier, stock_of):
        product_a = make_product("Product A", price="10.00", stock=5)
        sale = make_sale([(product_a, 2)])

        completed = sales_service.complete_sale(sale.id, cashier.id)

        assert stock_of(product_a) == 3
        assert completed.status == SALE_STATUS_COMPLETED
        assert completed.finished_at is not None
        assert completed.cashier_id == cashier.id
        assert completed.cashier_name == cashier.name

    def test_scenario_discount_requires_token(self, db_session, make_product):
        product_a = make_product("Product A", price="10.00", stock=5)
        payload = {"items": [{"product_id": product_a.id, "quantity": 2}], "discount": "2.00"}

        with pytest.raises(AuthorizationRequired):
            sales_service.build_cart(payload)

        cart, _ = sales_service.build_cart({**payload, "discount_token": "abcd"})
        assert cart.discount == Decimal("2.00")
        assert cart.grand_total == Decimal("18.00")

    def test_scenario_discount_redistributed_at_completion(self, db_session, make_product, make_sale, cashier):
        product_a = make_product("Product A", price="10.00", stock=5)
        sale = make_sale([(product_a, 2)], discount="2.00", token="abcd")
        assert sale.total_value == Decimal("18.00")

        completed = sales_service.complete_sale(sale.id, cashier.id)

        item = completed.items[0]
        assert item["unit_price"] == 9.0
        assert item["total"] == 18.0
        assert item["original_price"] == 10.0
        assert completed.discount == Decimal("0")
        assert completed.total_value == Decimal("18.00")

    def test_recompletion_rejected_without_double_discount(self, db_session, make_product, make_sale, cashier, stock_of):
        product_a = make_product("Product A", price="10.00", stock=5)
        sale = make_sale([(product_a, 2)], discount="2.00", token="abcd")
        sales_service.complete_sale(sale.id, cashier.id)

        with pytest.raises(AlreadyCompleted):
            sales_service.complete_sale(sale.id, cashier.id)

        reloaded = sales_service.get_sale(sale.id)
        assert reloaded.items[0]["unit_price"] == 9.0
        assert stock_of(product_a) == 3

    def test_redistribution_across_lines(self, db_session, make_product, make_sale, cashier):
        product_a = make_product("Product A", price="10.00", stock=5)
        product_b = make_product("Product B", price="30.00", stock=5)
        sale = make_sale([(product_a, 1), (product_b, 1)], discount="2.00")  # 5%

        completed = sales_service.complete_sale(sale.id, cashier.id)

        prices = [item["unit_price"] for item in completed.items]
        assert prices == [9.5, 28.5]
        assert sum(item["total"] for item in completed.items) == 38.0

    def test_cancelled_sale_cannot_be_completed(self, db_session, make_product, make_sale, cashier):
        product_a = make_product("Product A")
        sale = make_sale([(product_a, 1)])
        sales_service.cancel_sale(sale.id)

        with pytest.raises(InvalidTransition):
            sales_service.complete_sale(sale.id, cashier.id)

    def test_unknown_sale(self, db_session, cashier):
        with pytest.raises(NotFound):
            sales_service.complete_sale(999, cashier.id)

    def test_salesperson_cannot_complete(self, db_session, make_product, make_sale, salesperson):
        product_a = make_product("Product A")
        sale = make_sale([(product_a, 1)])
        with pytest.raises(RoleNotAllowed):
            sales_service.complete_sale(sale.id, salesperson.id)

    def test_manager_can_complete(self, db_session, make_product, make_sale, manager):
        product_a = make_product("Product A")
        sale = make_sale([(product_a, 1)])
        assert sales_service.complete_sale(sale.id, manager.id).status == SALE_STATUS_COMPLETED

    def test_product_removed_since_sale_was_saved(self, db_session, make_product, make_sale, cashier):
        product_a = make_product("Product A")
        sale = make_sale([(product_a, 1)])
        db_session.delete(product_a)
        db_session.commit()

        with pytest.raises(ProductNotFound):
            sales_service.complete_sale(sale.id, cashier.id)
        assert sales_service.get_sale(sale.id).status == SALE_STATUS_PENDING


class TestStockSafety:
    def test_insufficient_stock_names_product_and_available(self, db_session, make_product, make_sale, cashier):
        product_a = make_product("Product A", stock=5)
        sale = make_sale([(product_a, 3)])
        set_stock(product_a, 2)

        with pytest.raises(InsufficientStock) as exc:
            sales_service.complete_sale(sale.id, cashier.id)

        assert "Product A" in str(exc.value)
        assert exc.value.available == 2

    def test_atomic_completion_rolls_back_earlier_lines(self, db_session, make_product, make_sale, cashier, stock_of):
        product_a = make_product("Product A", stock=5)
        product_b = make_product("Product B", stock=5)
        sale = make_sale([(product_a, 2), (product_b, 3)])
        set_stock(product_b, 1)

        with pytest.raises(InsufficientStock):
            sales_service.complete_sale(sale.id, cashier.id)

        assert stock_of(product_a) == 5
        assert stock_of(product_b) == 1
        assert sales_service.get_sale(sale.id).status == SALE_STATUS_PENDING

    def test_legacy_completion_keeps_earlier_decrements(
        self, db_session, legacy_completion, make_product, make_sale, cashier, stock_of, caplog
    ):
        caplog.set_level(logging.WARNING)
        product_a = make_product("Product A", stock=5)
        product_b = make_product("Product B", stock=5)
        sale = make_sale([(product_a, 2), (product_b, 3)])
        set_stock(product_b, 1)

        with pytest.raises(InsufficientStock):
            sales_service.complete_sale(sale.id, cashier.id)

        assert stock_of(product_a) == 3
        assert stock_of(product_b) == 1
        assert sales_service.get_sale(sale.id).status == SALE_STATUS_PENDING
        assert "aborted after 1 committed stock decrement" in caplog.text

    def test_competing_sales_never_drive_stock_negative(self, db_session, make_product, make_sale, cashier, stock_of):
        product_a = make_product("Product A", stock=5)
        first = make_sale([(product_a, 3)])
        second = make_sale([(product_a, 3)])

        sales_service.complete_sale(first.id, cashier.id)
        with pytest.raises(InsufficientStock):
            sales_service.complete_sale(second.id, cashier.id)

        assert stock_of(product_a) == 2

    def test_decrement_loses_race_after_read(self, db_session, make_product, make_sale, cashier, monkeypatch):
        product_a = make_product("Product A", stock=5)
        sale = make_sale([(product_a, 3)])
        original_read_one = store_gateway.read_one

        def read_then_concurrent_sale(model, **filters):
            record = original_read_one(model, **filters)
            if model is Product:
                # Another terminal takes 4 units between the read and the update
                db.session.connection().execute(
                    sa.update(Product.__table__).where(Product.__table__.c.id == record.id).values(stock=1)
                )
            return record

        monkeypatch.setattr(store_gateway, "read_one", read_then_concurrent_sale)

        with pytest.raises(InsufficientStock) as exc:
            sales_service.complete_sale(sale.id, cashier.id)

        assert exc.value.available == 1
        assert sales_service.get_sale(sale.id).status == SALE_STATUS_PENDING

    def _fail_every_second_update(self, monkeypatch):
        original = store_gateway.conditional_update
        calls = {"n": 0}

        def flaky(model, values, *criteria):
            calls["n"] += 1
            if calls["n"] % 2 == 0:
                raise OperationalError("UPDATE products", {}, Exception("database is locked"))
            return original(model, values, *criteria)

        monkeypatch.setattr(store_gateway, "conditional_update", flaky)
        monkeypatch.setattr("salesdesk.services.concurrency.time.sleep", lambda seconds: None)

    def test_store_failure_mid_completion_atomic(self, db_session, make_product, make_sale, cashier, stock_of, monkeypatch):
        product_a = make_product("Product A", stock=5)
        product_b = make_product("Product B", stock=5)
        sale = make_sale([(product_a, 2), (product_b, 3)])
        self._fail_every_second_update(monkeypatch)

        with pytest.raises(StoreError):
            sales_service.complete_sale(sale.id, cashier.id)

        assert stock_of(product_a) == 5
        assert stock_of(product_b) == 5

    def test_store_failure_mid_completion_legacy(
        self, db_session, legacy_completion, make_product, make_sale, cashier, stock_of, monkeypatch
    ):
        product_a = make_product("Product A", stock=5)
        product_b = make_product("Product B", stock=5)
        sale = make_sale([(product_a, 2), (product_b, 3)])
        self._fail_every_second_update(monkeypatch)

        with pytest.raises(StoreError):
            sales_service.complete_sale(sale.id, cashier.id)

        assert stock_of(product_a) == 3
        assert stock_of(product_b) == 5


class TestRedistributeDiscount:
    def _items(self, *prices):
        return [
            SaleItem(product_id=n, product_name=f"P{n}", quantity=1,
                     unit_price=Decimal(p), original_price=Decimal(p))
            for n, p in enumerate(prices, start=1)
        ]

    def test_zero_subtotal_skips_redistribution(self):
        items, remaining = sales_service.redistribute_discount(self._items("0"), Decimal("5.00"))
        assert items[0].unit_price == Decimal("0")
        assert remaining == Decimal("5.00")

    def test_no_discount_is_a_no_op(self):
        items, remaining = sales_service.redistribute_discount(self._items("10.00"), Decimal("0"))
        assert items[0].unit_price == Decimal("10.00")
        assert remaining == Decimal("0")

    def test_discount_larger_than_subtotal_floors_prices_at_zero(self):
        items, remaining = sales_service.redistribute_discount(self._items("10.00"), Decimal("15.00"))
        assert items[0].unit_price == Decimal("0")
        assert remaining == Decimal("0")

    def test_rounding_residue_lands_on_one_line(self):
        items, remaining = sales_service.redistribute_discount(
            self._items("3.33", "3.33", "3.33"), Decimal("1.00"),
        )
        assert [item.total for item in items] == [Decimal("2.99"), Decimal("3.00"), Decimal("3.00")]
        assert sum(item.total for item in items) == Decimal("8.99")
        assert remaining == Decimal("0")

    def test_multi_unit_lines_add_up_to_discounted_subtotal(self):
        items = [
            SaleItem(product_id=1, product_name="P1", quantity=3,
                     unit_price=Decimal("3.33"), original_price=Decimal("3.33")),
            SaleItem(product_id=2, product_name="P2", quantity=7,
                     unit_price=Decimal("1.19"), original_price=Decimal("1.19")),
        ]
        items, _ = sales_service.redistribute_discount(items, Decimal("1.00"))
        assert sum(item.total for item in items) == Decimal("17.32")


class TestFinalizeSale:
    def test_cashier_allocates_payments_and_completes(self, db_session, make_product, make_sale, cashier, stock_of):
        product_a = make_product("Product A", price="10.00", stock=5)
        sale = make_sale([(product_a, 2)])

        completed = sales_service.finalize_sale(
            sale.id, cashier.id, payments={"debit": "5.00", "pix": "15.00"}, cashier_ident="T-01",
        )

        assert completed.status == SALE_STATUS_COMPLETED
        assert completed.payments["debit"] == 5.0
        assert completed.payments["pix"] == 15.0
        assert completed.payments["cash"] == 0.0
        assert completed.cashier_ident == "T-01"
        assert stock_of(product_a) == 3

    def test_unsettled_payments_block_completion(self, db_session, make_product, make_sale, cashier, stock_of):
        product_a = make_product("Product A", price="10.00", stock=5)
        sale = make_sale([(product_a, 2)])

        with pytest.raises(PaymentMismatch):
            sales_service.finalize_sale(sale.id, cashier.id, payments={"cash": "10.00"})

        assert stock_of(product_a) == 5
        assert sales_service.get_sale(sale.id).status == SALE_STATUS_PENDING

    def test_failed_completion_keeps_previous_payments(self, db_session, make_product, make_sale, cashier, stock_of):
        product_a = make_product("Product A", price="10.00", stock=5)
        sale = make_sale([(product_a, 2)])
        set_stock(product_a, 1)

        with pytest.raises(InsufficientStock):
            sales_service.finalize_sale(
                sale.id, cashier.id, payments={"pix": "20.00"}, installments=2, cashier_ident="T-01",
            )

        stored = sales_service.get_sale(sale.id)
        assert stored.status == SALE_STATUS_PENDING
        assert stored.payments["cash"] == 20.0
        assert stored.payments["pix"] == 0.0
        assert stored.installments == 1
        assert stored.cashier_ident in (None, "")
        assert stock_of(product_a) == 1

    def test_budget_cannot_be_finalized(self, db_session, make_product, make_sale, cashier):
        product_a = make_product("Product A")
        sale = make_sale([(product_a, 1)], as_budget=True)
        with pytest.raises(InvalidTransition):
            sales_service.finalize_sale(sale.id, cashier.id, payments={"cash": "10.00"})

    def test_installments_blocked_on_discounted_sale(self, db_session, make_product, make_sale, cashier):
        product_a = make_product("Product A", price="10.00", stock=5)
        sale = make_sale([(product_a, 2)], discount="1.00")
        with pytest.raises(ValidationError):
            sales_service.finalize_sale(sale.id, cashier.id, installments=3)


class TestCancelSale:
    def test_scenario_cancel_completed_restores_stock(self, db_session, make_product, make_sale, cashier, manager, stock_of):
        product_b = make_product("Product B", stock=10)
        sale = make_sale([(product_b, 3)])
        sales_service.complete_sale(sale.id, cashier.id)
        assert stock_of(product_b) == 7

        cancelled = sales_service.cancel_sale(sale.id, manager_id=manager.id)

        assert stock_of(product_b) == 10
        assert cancelled.status == SALE_STATUS_CANCELLED
        assert cancelled.finished_at is None

    @pytest.mark.parametrize("as_budget", [True, False])
    def test_cancel_open_sale_leaves_stock(self, db_session, make_product, make_sale, stock_of, as_budget):
        product_a = make_product("Product A", stock=5)
        sale = make_sale([(product_a, 2)], as_budget=as_budget)

        cancelled = sales_service.cancel_sale(sale.id)

        assert cancelled.status == SALE_STATUS_CANCELLED
        assert stock_of(product_a) == 5

    def test_cancel_twice_is_a_no_op(self, db_session, make_product, make_sale, cashier, stock_of):
        product_a = make_product("Product A", stock=5)
        sale = make_sale([(product_a, 2)])
        sales_service.complete_sale(sale.id, cashier.id)

        sales_service.cancel_sale(sale.id)
        sales_service.cancel_sale(sale.id)

        assert stock_of(product_a) == 5

    def test_missing_product_is_skipped(self, db_session, make_product, make_sale, cashier, stock_of, caplog):
        caplog.set_level(logging.WARNING)
        product_a = make_product("Product A", stock=5)
        product_b = make_product("Product B", stock=5)
        sale = make_sale([(product_a, 1), (product_b, 2)])
        sales_service.complete_sale(sale.id, cashier.id)
        db_session.delete(product_a)
        db_session.commit()

        cancelled = sales_service.cancel_sale(sale.id)

        assert cancelled.status == SALE_STATUS_CANCELLED
        assert stock_of(product_b) == 5
        assert "no longer exists" in caplog.text

    def test_only_managers_cancel(self, db_session, make_product, make_sale, cashier):
        product_a = make_product("Product A")
        sale = make_sale([(product_a, 1)])
        with pytest.raises(RoleNotAllowed):
            sales_service.cancel_sale(sale.id, manager_id=cashier.id)
