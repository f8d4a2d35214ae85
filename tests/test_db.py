"""Storage layer: accounts, settings, schema migration and product rows."""

import pytest

from cataleon import db
from cataleon.batch import run_batch
from cataleon.models import Estimate, LineItem, Product


@pytest.fixture
def auth_conn(tmp_path):
    connection = db.get_auth_connection(tmp_path / "auth.db")
    yield connection
    connection.close()


class TestAccounts:
    def test_create_and_authenticate(self, auth_conn):
        session, message = db.create_user(auth_conn, " Vendor_One ", "s3cret-pass")
        assert message == "Account created."
        assert session.username == "vendor_one"
        assert db.authenticate_user(auth_conn, "VENDOR_ONE", "s3cret-pass") == session

    def test_wrong_password(self, auth_conn):
        db.create_user(auth_conn, "vendor", "s3cret-pass")
        assert db.authenticate_user(auth_conn, "vendor", "nope-nope") is None
        assert db.authenticate_user(auth_conn, "ghost", "s3cret-pass") is None

    @pytest.mark.parametrize("username, password", [("ab", "long-enough"), ("vendor", "short")])
    def test_rejects_weak_input(self, auth_conn, username, password):
        session, _ = db.create_user(auth_conn, username, password)
        assert session is None

    def test_duplicate_username(self, auth_conn):
        db.create_user(auth_conn, "vendor", "s3cret-pass")
        assert db.create_user(auth_conn, "vendor", "other-pass") == (None, "That username already exists.")

    def test_password_change(self, auth_conn):
        db.create_user(auth_conn, "vendor", "s3cret-pass")
        assert db.update_user_password(auth_conn, "vendor", "wrong-pass", "new-password")[0] is False
        assert db.update_user_password(auth_conn, "vendor", "s3cret-pass", "new-password") == (True, "Password updated.")
        assert db.authenticate_user(auth_conn, "vendor", "new-password") is not None

    def test_delete_account_and_data(self, auth_conn, conn, session, make_product):
        db.create_user(auth_conn, "vendor", "s3cret-pass")
        make_product(session, "Ring")

        assert db.delete_user_account(auth_conn, "vendor", "s3cret-pass")[0]
        db.delete_user_data(conn, session.user_id)

        assert db.authenticate_user(auth_conn, "vendor", "s3cret-pass") is None
        assert conn.execute("SELECT COUNT(*) FROM products").fetchone()[0] == 0


class TestSchema:
    def test_init_is_idempotent(self, conn):
        db.init_db(conn)
        assert db.get_all_settings(conn)["products_page_size"] == 50

    def test_legacy_products_table_migrated(self, tmp_path):
        conn = db.get_connection(tmp_path / "legacy.db")
        conn.execute(
            "CREATE TABLE products (id INTEGER PRIMARY KEY, user_id INTEGER, name TEXT, retail_price REAL)"
        )
        conn.execute("INSERT INTO products (user_id, name, retail_price) VALUES (1, 'Old Ring', 500)")
        conn.commit()

        db.init_db(conn)

        columns = {row["name"] for row in conn.execute("PRAGMA table_info(products)")}
        assert set(db.PRODUCT_TABLE_COLUMNS) <= columns
        [product] = db.list_products(conn, 1, "Jewellery")
        assert product.name == "Old Ring"
        conn.close()


class TestSettings:
    def test_defaults_typed(self, conn):
        settings = db.get_all_settings(conn)
        assert settings["fallback_usd_inr_rate"] == pytest.approx(87.67)
        assert settings["bulk_update_max_workers"] == 8

    def test_save_ignores_unknown_keys(self, conn):
        db.save_settings(conn, {"fallback_usd_inr_rate": 83.1, "mystery": "x"})
        assert db.get_all_settings(conn)["fallback_usd_inr_rate"] == pytest.approx(83.1)
        assert conn.execute("SELECT COUNT(*) FROM settings WHERE key = 'mystery'").fetchone()[0] == 0

    def test_bad_value_falls_back_to_default(self, conn):
        db.save_settings(conn, {"products_page_size": "lots"})
        assert db.get_all_settings(conn)["products_page_size"] == 50


class TestProducts:
    def test_update_rejects_unknown_columns(self, conn, session, make_product):
        product_id = make_product(session)
        with pytest.raises(ValueError):
            db.update_product(conn, session.user_id, product_id, {"user_id": 2})

    def test_update_missing_product(self, conn, session):
        with pytest.raises(LookupError):
            db.update_product(conn, session.user_id, 999, {"stock_quantity": 1})

    def test_find_by_sku_scoped_to_owner(self, conn, session, other_session, make_product):
        make_product(other_session, "Theirs", sku="SKU-1")
        assert db.find_product_by_sku(conn, session.user_id, "SKU-1") is None

    def test_add_round_trips_fields(self, conn, session):
        product_id = db.add_product(conn, session.user_id, Product(id=None, name="Ring", carat=1.5, lab="GIA"))
        [product] = db.get_products_by_ids(conn, session.user_id, [product_id])
        assert (product.carat, product.lab, product.user_id) == (1.5, "GIA", session.user_id)
        assert product.created_at is not None


class TestEstimates:
    def test_line_items_stored_as_json(self, conn, session):
        saved = db.insert_estimate(
            conn,
            session.user_id,
            Estimate(id=None, user_id=session.user_id, estimate_name="Quote",
                     line_items=[LineItem(item_name="Band", gold_cost=9000.0, quantity=2)]),
        )
        raw = conn.execute("SELECT line_items FROM estimates WHERE id = ?", (saved.id,)).fetchone()[0]

        assert '"item_name": "Band"' in raw
        assert saved.line_items[0].subtotal == 18000.0
        assert saved.created_at is not None

    def test_update_scoped_and_whitelisted(self, conn, session, other_session):
        saved = db.insert_estimate(conn, session.user_id, Estimate(id=None, user_id=session.user_id, estimate_name="Q"))

        assert db.update_estimate(conn, other_session.user_id, saved.id, {"status": "quoted"}) == 0
        assert db.update_estimate(conn, session.user_id, saved.id, {}) == 0
        with pytest.raises(ValueError):
            db.update_estimate(conn, session.user_id, saved.id, {"user_id": 2})

    def test_deleted_with_user_data(self, conn, session, other_session):
        db.insert_estimate(conn, session.user_id, Estimate(id=None, user_id=session.user_id, estimate_name="Mine"))
        db.insert_estimate(conn, other_session.user_id, Estimate(id=None, user_id=other_session.user_id, estimate_name="Theirs"))

        db.delete_user_data(conn, session.user_id)

        assert db.list_estimates(conn, session.user_id) == []
        assert [e.estimate_name for e in db.list_estimates(conn, other_session.user_id)] == ["Theirs"]


class TestVendorProfile:
    def test_created_lazily_with_defaults(self, conn):
        profile = db.get_vendor_profile(conn, 42)
        assert profile.user_id == 42
        assert profile.gold_rate_24k_per_gram == 0
        assert profile.silver_rate_per_gram == 95

    def test_update_whitelisted(self, conn):
        db.update_vendor_profile(conn, 42, {"business_name": "Shine"})
        assert db.get_vendor_profile(conn, 42).business_name == "Shine"
        with pytest.raises(ValueError):
            db.update_vendor_profile(conn, 42, {"user_id": 7})


class TestConnections:
    def test_open_catalog_db_initialises_schema(self, tmp_path):
        conn = db.open_catalog_db(tmp_path / "fresh.db")
        assert db.get_all_settings(conn)["products_page_size"] == 50
        columns = {row["name"] for row in conn.execute("PRAGMA table_info(products)")}
        assert "diamond_clarity" in columns
        conn.close()

    def test_worker_writes_visible_to_other_connections(self, tmp_path):
        path = tmp_path / "shared.db"
        writer = db.open_catalog_db(path)
        reader = db.open_catalog_db(path)
        ids = [db.add_product(writer, 1, Product(id=None, name=f"Ring {i}")) for i in range(12)]

        result = run_batch(
            ids,
            lambda product_id: db.update_product(writer, 1, product_id, {"stock_quantity": 5}),
            key=lambda product_id: product_id,
            max_workers=6,
        )

        assert result.ok
        assert {p.stock_quantity for p in db.list_products(reader, 1, "Jewellery")} == {5}
        writer.close()
        reader.close()
