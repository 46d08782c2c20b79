"""
Unit-of-work tests.

Verifies:
- Consecutive units of work each commit on the SQLite store
- A failing unit rolls back everything it staged and re-raises
- A unit opened while the session already holds a transaction still commits
"""

import pytest

from backoffice.extensions import db
from backoffice.models import Product
from backoffice.services.concurrency import unit_of_work


class TestUnitOfWork:

    def test_back_to_back_units_commit(self, make_product):
        product = make_product(name="Crate")
        product_id = product.id

        with unit_of_work():
            db.session.get(Product, product_id).stock = 5
        with unit_of_work():
            db.session.get(Product, product_id).stock = 7

        db.session.expire_all()
        assert db.session.get(Product, product_id).stock == 7

    def test_failure_rolls_back_and_reraises(self, make_product):
        product_id = make_product(name="Crate").id

        with pytest.raises(RuntimeError):
            with unit_of_work():
                db.session.get(Product, product_id).stock = 99
                db.session.flush()
                raise RuntimeError("boom")

        db.session.expire_all()
        assert db.session.get(Product, product_id).stock == 0

        # The session is usable again after the rollback
        with unit_of_work():
            db.session.get(Product, product_id).stock = 3
        db.session.expire_all()
        assert db.session.get(Product, product_id).stock == 3

    def test_unit_joins_transaction_begun_by_a_read(self, make_product):
        product_id = make_product(name="Crate").id
        db.session.query(Product).filter_by(id=product_id).one()
        assert db.session().in_transaction()

        with unit_of_work():
            db.session.get(Product, product_id).stock = 4

        db.session.expire_all()
        assert db.session.get(Product, product_id).stock == 4
