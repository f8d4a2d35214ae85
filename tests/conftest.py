import pytest

from cataleon.db import add_product, get_connection, init_db
from cataleon.models import Product, Session


@pytest.fixture
def conn(tmp_path):
    connection = get_connection(tmp_path / "cataleon.db")
    init_db(connection)
    yield connection
    connection.close()


@pytest.fixture
def session():
    return Session(user_id=1, username="vendor")


@pytest.fixture
def other_session():
    return Session(user_id=2, username="rival")


@pytest.fixture
def make_product(conn):
    def _make(session, name="Ring 1", **fields):
        product_id = add_product(conn, session.user_id, Product(id=None, name=name, **fields))
        return product_id

    return _make
