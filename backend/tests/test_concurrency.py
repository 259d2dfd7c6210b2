# Overview: Threaded concurrency coverage against a file-backed SQLite database.

"""
Concurrency Tests

Each worker thread gets its own app context (and therefore its own session
and connection). The stock guard lives in the database, so no interleaving
of concurrent sales may oversell or lose an update.
"""

import os
import tempfile
import threading

import pytest

from loyalpos import create_app
from loyalpos.config import Config
from loyalpos.errors import InsufficientStock
from loyalpos.extensions import db
from loyalpos.models import Business, Product, Sale, StockMovement
from loyalpos.services import inventory_service, products_service, sales_service


@pytest.fixture
def file_app():
    tmpdir = tempfile.TemporaryDirectory()
    db_path = os.path.join(tmpdir.name, "concurrency.db")

    class FileConfig(Config):
        TESTING = True
        SQLALCHEMY_DATABASE_URI = f"sqlite:///{db_path}"
        WRITE_RETRY_ATTEMPTS = 5

    app = create_app(FileConfig)
    with app.app_context():
        db.create_all()
        business = Business(name="Concurrency Cafe", slug="concurrency-cafe")
        db.session.add(business)
        db.session.commit()
        product = products_service.create_product(
            business_id=business.id,
            payload={"name": "Last Croissants", "price_cents": 300, "low_stock_threshold": 2},
            initial_stock=10,
        )
        ids = (business.id, product.id)

    yield app, ids

    with app.app_context():
        db.session.remove()
        db.drop_all()
        db.session.remove()
        db.engine.dispose()
    tmpdir.cleanup()


def _run_workers(app, target, count):
    results = []
    errors = []
    lock = threading.Lock()

    def worker():
        with app.app_context():
            try:
                outcome = target()
                with lock:
                    results.append(outcome)
            except Exception as exc:
                with lock:
                    errors.append(exc)
            finally:
                db.session.remove()

    threads = [threading.Thread(target=worker) for _ in range(count)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    return results, errors


def test_concurrent_sales_never_oversell(file_app):
    app, (business_id, product_id) = file_app

    def sell_three():
        sale = sales_service.create_sale(
            business_id=business_id,
            items=[{"product_id": product_id, "quantity": 3}],
            payment_method="CASH",
        )
        return sale.sale_number

    numbers, errors = _run_workers(app, sell_three, 8)

    # 10 in stock, 3 per sale: exactly three sales fit
    assert len(numbers) == 3
    assert len(set(numbers)) == 3
    assert len(errors) == 5
    assert all(isinstance(e, InsufficientStock) for e in errors)

    with app.app_context():
        assert db.session.get(Product, product_id).stock_quantity == 1
        assert db.session.query(Sale).count() == 3
        assert inventory_service.find_ledger_discrepancies(business_id=business_id) == []


def test_concurrent_adjustments_do_not_lose_updates(file_app):
    app, (business_id, product_id) = file_app

    def receive_one():
        return inventory_service.receive_stock(
            business_id=business_id, product_id=product_id, quantity=1
        ).stock_after

    stock_after, errors = _run_workers(app, receive_one, 10)

    assert errors == []
    assert sorted(stock_after) == list(range(11, 21))

    with app.app_context():
        assert db.session.get(Product, product_id).stock_quantity == 20
        assert inventory_service.ledger_balance(business_id=business_id, product_id=product_id) == 20


def test_concurrent_voids_restore_once(file_app):
    app, (business_id, product_id) = file_app

    with app.app_context():
        sale = sales_service.create_sale(
            business_id=business_id,
            items=[{"product_id": product_id, "quantity": 4}],
            payment_method="CARD",
        )
        sale_id = sale.id

    def void():
        return sales_service.void_sale(business_id=business_id, sale_id=sale_id, reason="race").status

    statuses, errors = _run_workers(app, void, 5)

    assert statuses == ["VOIDED"]
    assert len(errors) == 4

    with app.app_context():
        assert db.session.get(Product, product_id).stock_quantity == 10


def test_multi_product_sales_in_opposite_orders(file_app):
    app, (business_id, product_a) = file_app

    with app.app_context():
        product_b = products_service.create_product(
            business_id=business_id,
            payload={"name": "Last Baguettes", "price_cents": 450},
            initial_stock=4,
        ).id

    turn = iter(range(8))
    turn_lock = threading.Lock()

    def sell_pair():
        with turn_lock:
            n = next(turn)
        pair = [product_a, product_b] if n % 2 == 0 else [product_b, product_a]
        return sales_service.create_sale(
            business_id=business_id,
            items=[{"product_id": pid, "quantity": 1} for pid in pair],
            payment_method="CASH",
        ).id

    sale_ids, errors = _run_workers(app, sell_pair, 8)

    # B runs out after four sales; refused sales leave A untouched
    assert len(sale_ids) == 4
    assert len(errors) == 4
    assert all(isinstance(e, InsufficientStock) for e in errors)

    with app.app_context():
        assert db.session.get(Product, product_a).stock_quantity == 6
        assert db.session.get(Product, product_b).stock_quantity == 0
        assert inventory_service.find_ledger_discrepancies(business_id=business_id) == []

        for sale_id in sale_ids:
            movements = (
                db.session.query(StockMovement)
                .filter_by(sale_id=sale_id, movement_type="SALE")
                .order_by(StockMovement.id.asc())
                .all()
            )
            # Rows are always taken in ascending product id
            assert [m.product_id for m in movements] == sorted([product_a, product_b])
