# Overview: Pytest coverage for the sales board ordering and change-driven reloads.

from datetime import datetime, timedelta

from sqlalchemy import text

from salesdesk.extensions import db
from salesdesk.models import Sale, SALE_STATUS_CANCELLED, SALE_STATUS_COMPLETED, SALE_STATUS_PENDING
from salesdesk.services import sales_service, store_gateway
from salesdesk.services.sales_board import SalesBoard, board_order


def sale(id, status, minutes):
    return Sale(id=id, status=status, created_at=datetime(2026, 1, 1, 9, 0) + timedelta(minutes=minutes))


class TestBoardOrder:
    def test_pending_oldest_first_then_rest_newest_first(self):
        sales = [
            sale(1, SALE_STATUS_COMPLETED, 0),
            sale(2, SALE_STATUS_PENDING, 10),
            sale(3, SALE_STATUS_PENDING, 5),
            sale(4, SALE_STATUS_COMPLETED, 20),
        ]
        assert [s.id for s in board_order(sales)] == [3, 2, 4, 1]


class TestSalesBoard:
    def test_reloads_only_after_a_change(self, db_session, make_product, make_sale):
        board = SalesBoard()
        try:
            product_a = make_product("Product A", stock=5)
            first = make_sale([(product_a, 1)])

            assert [e["id"] for e in board.entries()] == [first.id]
            board.entries()
            assert board.reloads == 1

            second = make_sale([(product_a, 1)])
            assert board.stale
            assert [e["id"] for e in board.entries()] == [first.id, second.id]
            assert board.reloads == 2
        finally:
            board.close()

    def test_status_filter_and_transitions(self, db_session, make_product, make_sale, cashier):
        board = SalesBoard()
        try:
            product_a = make_product("Product A", stock=5)
            sale_1 = make_sale([(product_a, 1)])
            make_sale([(product_a, 1)])

            sales_service.complete_sale(sale_1.id, cashier.id)

            completed = board.entries(SALE_STATUS_COMPLETED)
            assert [e["id"] for e in completed] == [sale_1.id]
            assert len(board.entries(SALE_STATUS_PENDING)) == 1
        finally:
            board.close()

    def test_closed_board_stops_listening(self, db_session, make_product, make_sale):
        board = SalesBoard()
        board.entries()
        board.close()

        product_a = make_product("Product A")
        make_sale([(product_a, 1)])

        assert not board.stale

    def test_sees_writes_made_through_another_connection(self, db_session, make_product, make_sale):
        board = SalesBoard()
        try:
            product_a = make_product("Product A", stock=5)
            sale_1 = make_sale([(product_a, 1)])
            assert board.entries()[0]["status"] == SALE_STATUS_PENDING
            db_session.commit()

            with db.engine.begin() as conn:
                conn.execute(
                    text("UPDATE sales SET status = :status WHERE id = :id"),
                    {"status": SALE_STATUS_CANCELLED, "id": sale_1.id},
                )

            assert not board.stale
            assert board.entries()[0]["status"] == SALE_STATUS_CANCELLED
            assert board.reloads == 2
        finally:
            board.close()

    def test_sees_conditional_updates_on_sales(self, db_session, make_product, make_sale):
        board = SalesBoard()
        try:
            product_a = make_product("Product A", stock=5)
            sale_1 = make_sale([(product_a, 1)])
            board.entries()

            store_gateway.conditional_update(
                Sale, {"client_name": "Walk-in"}, Sale.id == sale_1.id,
            )
            db_session.commit()

            assert board.stale
            assert board.entries()[0]["client_name"] == "Walk-in"
        finally:
            board.close()

    def test_uncommitted_changes_do_not_mark_the_board_stale(self, db_session, make_product, make_sale):
        board = SalesBoard()
        try:
            product_a = make_product("Product A", stock=5)
            sale_1 = make_sale([(product_a, 1)])
            board.entries()

            store_gateway.update(store_gateway.read_one(Sale, id=sale_1.id), {"client_name": "Walk-in"})
            assert not board.stale
            db_session.rollback()

            assert not board.stale
        finally:
            board.close()
