import hashlib
import hmac
import json
import os
import re
import secrets
import sqlite3
import threading
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Iterable

from cataleon.models import Estimate, LineItem, Product, PurchaseInquiry, Session, ShareLink, VendorProfile

DATA_DIR = Path(os.getenv("CATALEON_DATA_DIR", Path(__file__).resolve().parents[1] / "data"))
DB_PATH = DATA_DIR / "cataleon.db"
AUTH_DB_PATH = DATA_DIR / "auth.db"
PASSWORD_ITERATIONS = 200_000

DEFAULT_SETTINGS: dict[str, str] = {
    "exchange_rate_cache_ttl_seconds": "3600",
    "fallback_usd_inr_rate": "87.67",
    "default_purity_karat": "18",
    "products_page_size": "50",
    "bulk_update_max_workers": "8",
}

# Columns a bulk edit or rate recalculation may write. Ownership, ids and
# timestamps are never taken from caller input.
WRITABLE_PRODUCT_COLUMNS = [
    name
    for name in Product.column_names()
    if name not in {"id", "user_id", "deleted_at", "created_at"}
]

PRODUCT_TABLE_COLUMNS = {
    "name": "TEXT NOT NULL",
    "sku": "TEXT",
    "product_type": "TEXT",
    "category": "TEXT",
    "description": "TEXT",
    "metal_type": "TEXT",
    "gemstone": "TEXT",
    "color": "TEXT",
    "diamond_color": "TEXT",
    "diamond_clarity": "TEXT",
    "clarity": "TEXT",
    "delivery_type": "TEXT",
    "dispatches_in_days": "REAL",
    "weight_grams": "REAL",
    "net_weight": "REAL",
    "purity_fraction_used": "REAL",
    "purity_unit": "TEXT",
    "gold_per_gram_price": "REAL",
    "d_wt_1": "REAL",
    "d_wt_2": "REAL",
    "diamond_weight": "REAL",
    "d_rate_1": "REAL",
    "pointer_diamond": "REAL",
    "d_value": "REAL",
    "mkg": "REAL",
    "certification_cost": "REAL",
    "gemstone_cost": "REAL",
    "cost_price": "REAL NOT NULL DEFAULT 0",
    "retail_price": "REAL NOT NULL DEFAULT 0",
    "stock_quantity": "INTEGER",
    "gemstone_type": "TEXT",
    "carat_weight": "REAL",
    "cut": "TEXT",
    "diamond_type": "TEXT",
    "shape": "TEXT",
    "carat": "REAL",
    "polish": "TEXT",
    "symmetry": "TEXT",
    "fluorescence": "TEXT",
    "lab": "TEXT",
    "image_url": "TEXT",
    "image_url_2": "TEXT",
    "image_url_3": "TEXT",
    "deleted_at": "TEXT",
    "created_at": "TEXT NOT NULL",
}

VENDOR_PROFILE_FIELDS = [
    "business_name",
    "brand_tagline",
    "address_line1",
    "address_line2",
    "city",
    "state",
    "pincode",
    "country",
    "email",
    "phone",
    "whatsapp_number",
    "gold_rate_24k_per_gram",
    "silver_rate_per_gram",
    "platinum_rate_per_gram",
    "making_charges_per_gram",
    "gold_rate_updated_at",
]

_write_lock = threading.RLock()


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def get_connection(db_path: Path | None = None) -> sqlite3.Connection:
    target = Path(db_path or DB_PATH)
    target.parent.mkdir(parents=True, exist_ok=True)
    # Bulk updates write from worker threads; _write_lock serialises them.
    conn = sqlite3.connect(target, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    return conn


def open_catalog_db(db_path: Path | None = None) -> sqlite3.Connection:
    """A ready-to-use catalog connection. Callers own it and close it."""
    conn = get_connection(db_path)
    init_db(conn)
    return conn


def _execute_write(conn: sqlite3.Connection, sql: str, params: Iterable[Any] = ()) -> sqlite3.Cursor:
    with _write_lock:
        cursor = conn.execute(sql, tuple(params))
        conn.commit()
        return cursor


def init_auth_db(conn: sqlite3.Connection) -> None:
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS users (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            username TEXT NOT NULL UNIQUE,
            password_salt TEXT NOT NULL,
            password_hash TEXT NOT NULL,
            created_at TEXT NOT NULL
        )
        """
    )
    conn.commit()


def get_auth_connection(db_path: Path | None = None) -> sqlite3.Connection:
    conn = get_connection(db_path or AUTH_DB_PATH)
    init_auth_db(conn)
    return conn


def _hash_password(password: str, salt_hex: str) -> str:
    digest = hashlib.pbkdf2_hmac(
        "sha256",
        password.encode("utf-8"),
        bytes.fromhex(salt_hex),
        PASSWORD_ITERATIONS,
    )
    return digest.hex()


def create_user(auth_conn: sqlite3.Connection, username: str, password: str) -> tuple[Session | None, str]:
    normalized = username.strip().lower()
    if not re.fullmatch(r"[a-z0-9_.-]{3,32}", normalized):
        return None, "Username must be 3-32 chars and use letters, numbers, ., _, or -."
    if len(password) < 8:
        return None, "Password must be at least 8 characters."

    salt_hex = secrets.token_hex(16)
    password_hash = _hash_password(password, salt_hex)
    try:
        cursor = auth_conn.execute(
            """
            INSERT INTO users (username, password_salt, password_hash, created_at)
            VALUES (?, ?, ?, ?)
            """,
            (normalized, salt_hex, password_hash, utc_now_iso()),
        )
        auth_conn.commit()
    except sqlite3.IntegrityError:
        return None, "That username already exists."

    return Session(user_id=int(cursor.lastrowid), username=normalized), "Account created."


def authenticate_user(auth_conn: sqlite3.Connection, username: str, password: str) -> Session | None:
    normalized = username.strip().lower()
    row = auth_conn.execute(
        "SELECT id, username, password_salt, password_hash FROM users WHERE username = ?",
        (normalized,),
    ).fetchone()
    if row is None:
        return None

    attempted_hash = _hash_password(password, row["password_salt"])
    if not hmac.compare_digest(attempted_hash, row["password_hash"]):
        return None

    return Session(user_id=int(row["id"]), username=str(row["username"]))


def update_user_password(
    auth_conn: sqlite3.Connection,
    username: str,
    current_password: str,
    new_password: str,
) -> tuple[bool, str]:
    normalized = username.strip().lower()
    row = auth_conn.execute(
        "SELECT password_salt, password_hash FROM users WHERE username = ?",
        (normalized,),
    ).fetchone()
    if row is None:
        return False, "User not found."

    current_hash = _hash_password(current_password, row["password_salt"])
    if not hmac.compare_digest(current_hash, row["password_hash"]):
        return False, "Current password is incorrect."

    if len(new_password) < 8:
        return False, "New password must be at least 8 characters."

    new_salt = secrets.token_hex(16)
    new_hash = _hash_password(new_password, new_salt)
    auth_conn.execute(
        """
        UPDATE users
        SET password_salt = ?, password_hash = ?
        WHERE username = ?
        """,
        (new_salt, new_hash, normalized),
    )
    auth_conn.commit()
    return True, "Password updated."


def delete_user_account(auth_conn: sqlite3.Connection, username: str, password: str) -> tuple[bool, str]:
    normalized = username.strip().lower()
    row = auth_conn.execute(
        "SELECT password_salt, password_hash FROM users WHERE username = ?",
        (normalized,),
    ).fetchone()
    if row is None:
        return False, "User not found."

    attempted_hash = _hash_password(password, row["password_salt"])
    if not hmac.compare_digest(attempted_hash, row["password_hash"]):
        return False, "Password is incorrect."

    auth_conn.execute("DELETE FROM users WHERE username = ?", (normalized,))
    auth_conn.commit()
    return True, "Account deleted."


def delete_user_data(conn: sqlite3.Connection, user_id: int) -> None:
    with _write_lock:
        conn.execute(
            "DELETE FROM purchase_inquiries WHERE share_link_id IN (SELECT id FROM share_links WHERE user_id = ?)",
            (user_id,),
        )
        conn.execute("DELETE FROM share_links WHERE user_id = ?", (user_id,))
        conn.execute("DELETE FROM estimates WHERE user_id = ?", (user_id,))
        conn.execute("DELETE FROM products WHERE user_id = ?", (user_id,))
        conn.execute("DELETE FROM vendor_profiles WHERE user_id = ?", (user_id,))
        conn.commit()


def init_db(conn: sqlite3.Connection) -> None:
    cursor = conn.cursor()

    cursor.execute(
        """
        CREATE TABLE IF NOT EXISTS settings (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )
        """
    )

    cursor.execute(
        """
        CREATE TABLE IF NOT EXISTS exchange_rates (
            pair TEXT PRIMARY KEY,
            rate REAL NOT NULL,
            fetched_at TEXT NOT NULL,
            provider TEXT NOT NULL
        )
        """
    )

    column_sql = ",\n            ".join(f"{name} {ddl}" for name, ddl in PRODUCT_TABLE_COLUMNS.items())
    cursor.execute(
        f"""
        CREATE TABLE IF NOT EXISTS products (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id INTEGER NOT NULL,
            {column_sql}
        )
        """
    )

    existing_columns = [row["name"] for row in conn.execute("PRAGMA table_info(products)").fetchall()]
    for name, ddl in PRODUCT_TABLE_COLUMNS.items():
        if name not in existing_columns:
            cursor.execute(f"ALTER TABLE products ADD COLUMN {name} {ddl.replace('NOT NULL', '')}")

    cursor.execute("CREATE INDEX IF NOT EXISTS idx_products_owner ON products (user_id, deleted_at)")

    cursor.execute(
        """
        CREATE TABLE IF NOT EXISTS vendor_profiles (
            user_id INTEGER PRIMARY KEY,
            business_name TEXT,
            brand_tagline TEXT,
            address_line1 TEXT,
            address_line2 TEXT,
            city TEXT,
            state TEXT,
            pincode TEXT,
            country TEXT,
            email TEXT,
            phone TEXT,
            whatsapp_number TEXT,
            gold_rate_24k_per_gram REAL NOT NULL DEFAULT 0,
            silver_rate_per_gram REAL NOT NULL DEFAULT 95,
            platinum_rate_per_gram REAL NOT NULL DEFAULT 3200,
            making_charges_per_gram REAL NOT NULL DEFAULT 0,
            gold_rate_updated_at TEXT,
            updated_at TEXT NOT NULL
        )
        """
    )

    cursor.execute(
        """
        CREATE TABLE IF NOT EXISTS share_links (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id INTEGER NOT NULL,
            share_token TEXT NOT NULL UNIQUE,
            shared_categories TEXT NOT NULL,
            markup_percentage REAL NOT NULL DEFAULT 0,
            markdown_percentage REAL NOT NULL DEFAULT 0,
            show_vendor_details INTEGER NOT NULL DEFAULT 1,
            is_active INTEGER NOT NULL DEFAULT 1,
            expires_at TEXT NOT NULL,
            view_count INTEGER NOT NULL DEFAULT 0,
            created_at TEXT NOT NULL
        )
        """
    )

    cursor.execute(
        """
        CREATE TABLE IF NOT EXISTS purchase_inquiries (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            share_link_id INTEGER NOT NULL,
            product_id INTEGER NOT NULL,
            customer_name TEXT NOT NULL,
            customer_email TEXT NOT NULL,
            customer_phone TEXT,
            message TEXT,
            quantity INTEGER NOT NULL DEFAULT 1,
            status TEXT NOT NULL DEFAULT 'pending',
            created_at TEXT NOT NULL,
            FOREIGN KEY (share_link_id) REFERENCES share_links(id),
            FOREIGN KEY (product_id) REFERENCES products(id)
        )
        """
    )

    cursor.execute(
        """
        CREATE TABLE IF NOT EXISTS estimates (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id INTEGER NOT NULL,
            estimate_name TEXT NOT NULL,
            line_items TEXT NOT NULL DEFAULT '[]',
            status TEXT NOT NULL DEFAULT 'draft',
            gold_rate_24k REAL NOT NULL DEFAULT 0,
            profit_margin_percentage REAL NOT NULL DEFAULT 0,
            total_cost REAL NOT NULL DEFAULT 0,
            final_selling_price REAL NOT NULL DEFAULT 0,
            customer_name TEXT,
            customer_phone TEXT,
            customer_email TEXT,
            customer_address TEXT,
            notes TEXT,
            invoice_number TEXT,
            invoice_date TEXT,
            invoice_type TEXT,
            payment_terms TEXT,
            payment_due_date TEXT,
            invoice_status TEXT,
            invoice_notes TEXT,
            payment_date TEXT,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )
        """
    )
    cursor.execute("CREATE INDEX IF NOT EXISTS idx_estimates_owner ON estimates (user_id, invoice_number)")

    for key, value in DEFAULT_SETTINGS.items():
        cursor.execute(
            """
            INSERT OR IGNORE INTO settings (key, value, updated_at)
            VALUES (?, ?, ?)
            """,
            (key, value, utc_now_iso()),
        )

    conn.commit()


def get_all_settings(conn: sqlite3.Connection) -> dict[str, Any]:
    rows = conn.execute("SELECT key, value FROM settings").fetchall()
    raw = {row["key"]: row["value"] for row in rows}

    def get_float(key: str) -> float:
        try:
            return float(raw.get(key, DEFAULT_SETTINGS[key]))
        except (TypeError, ValueError):
            return float(DEFAULT_SETTINGS[key])

    return {
        "exchange_rate_cache_ttl_seconds": int(get_float("exchange_rate_cache_ttl_seconds")),
        "fallback_usd_inr_rate": get_float("fallback_usd_inr_rate"),
        "default_purity_karat": get_float("default_purity_karat"),
        "products_page_size": int(get_float("products_page_size")),
        "bulk_update_max_workers": int(get_float("bulk_update_max_workers")),
    }


def save_settings(conn: sqlite3.Connection, settings: dict[str, Any]) -> None:
    now = utc_now_iso()
    with _write_lock:
        for key in DEFAULT_SETTINGS:
            if key not in settings:
                continue
            conn.execute(
                """
                INSERT INTO settings (key, value, updated_at)
                VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at
                """,
                (key, str(settings[key]), now),
            )
        conn.commit()


def get_cached_rate(conn: sqlite3.Connection, pair: str) -> sqlite3.Row | None:
    return conn.execute(
        "SELECT pair, rate, fetched_at, provider FROM exchange_rates WHERE pair = ?",
        (pair,),
    ).fetchone()


def save_rate(conn: sqlite3.Connection, pair: str, rate: float, provider: str) -> None:
    _execute_write(
        conn,
        """
        INSERT INTO exchange_rates (pair, rate, fetched_at, provider)
        VALUES (?, ?, ?, ?)
        ON CONFLICT(pair)
        DO UPDATE SET
            rate = excluded.rate,
            fetched_at = excluded.fetched_at,
            provider = excluded.provider
        """,
        (pair, rate, utc_now_iso(), provider),
    )


def is_fresh(fetched_at_iso: str, max_age_seconds: int) -> bool:
    try:
        fetched_at = datetime.fromisoformat(fetched_at_iso)
    except ValueError:
        return False
    if fetched_at.tzinfo is None:
        fetched_at = fetched_at.replace(tzinfo=timezone.utc)
    return datetime.now(timezone.utc) - fetched_at <= timedelta(seconds=max_age_seconds)


def list_products(conn: sqlite3.Connection, user_id: int, product_type: str | None = None) -> list[Product]:
    sql = "SELECT * FROM products WHERE user_id = ? AND deleted_at IS NULL"
    params: list[Any] = [user_id]
    if product_type == "Jewellery":
        sql += " AND (product_type = ? OR product_type IS NULL)"
        params.append(product_type)
    elif product_type:
        sql += " AND product_type = ?"
        params.append(product_type)
    sql += " ORDER BY created_at DESC, id DESC"
    return [Product.from_row(row) for row in conn.execute(sql, params).fetchall()]


def get_products_by_ids(conn: sqlite3.Connection, user_id: int, product_ids: Iterable[int]) -> list[Product]:
    ids = [int(product_id) for product_id in product_ids]
    if not ids:
        return []
    placeholders = ",".join("?" for _ in ids)
    rows = conn.execute(
        f"SELECT * FROM products WHERE user_id = ? AND deleted_at IS NULL AND id IN ({placeholders})",
        [user_id, *ids],
    ).fetchall()
    return [Product.from_row(row) for row in rows]


def find_product_by_sku(conn: sqlite3.Connection, user_id: int, sku: str) -> Product | None:
    row = conn.execute(
        "SELECT * FROM products WHERE user_id = ? AND sku = ? AND deleted_at IS NULL",
        (user_id, sku),
    ).fetchone()
    return Product.from_row(row) if row is not None else None


def add_product(conn: sqlite3.Connection, user_id: int, product: Product) -> int:
    record = {name: getattr(product, name) for name in WRITABLE_PRODUCT_COLUMNS}
    record["user_id"] = user_id
    record["created_at"] = product.created_at or utc_now_iso()
    columns = list(record.keys())
    cursor = _execute_write(
        conn,
        f"INSERT INTO products ({', '.join(columns)}) VALUES ({', '.join('?' for _ in columns)})",
        [record[column] for column in columns],
    )
    return int(cursor.lastrowid)


def update_product(conn: sqlite3.Connection, user_id: int, product_id: int, changes: dict[str, Any]) -> int:
    unknown = [column for column in changes if column not in WRITABLE_PRODUCT_COLUMNS]
    if unknown:
        raise ValueError(f"Unknown product column(s): {', '.join(unknown)}")
    if not changes:
        return 0

    assignments = ", ".join(f"{column} = ?" for column in changes)
    cursor = _execute_write(
        conn,
        f"UPDATE products SET {assignments} WHERE id = ? AND user_id = ? AND deleted_at IS NULL",
        [*changes.values(), product_id, user_id],
    )
    if cursor.rowcount == 0:
        raise LookupError(f"Product {product_id} not found")
    return cursor.rowcount


def soft_delete_products(conn: sqlite3.Connection, user_id: int, product_ids: Iterable[int]) -> int:
    ids = [int(product_id) for product_id in product_ids]
    if not ids:
        return 0
    placeholders = ",".join("?" for _ in ids)
    cursor = _execute_write(
        conn,
        f"UPDATE products SET deleted_at = ? WHERE user_id = ? AND deleted_at IS NULL AND id IN ({placeholders})",
        [utc_now_iso(), user_id, *ids],
    )
    return cursor.rowcount


def get_vendor_profile(conn: sqlite3.Connection, user_id: int) -> VendorProfile:
    row = conn.execute("SELECT * FROM vendor_profiles WHERE user_id = ?", (user_id,)).fetchone()
    if row is None:
        _execute_write(
            conn,
            "INSERT OR IGNORE INTO vendor_profiles (user_id, updated_at) VALUES (?, ?)",
            (user_id, utc_now_iso()),
        )
        row = conn.execute("SELECT * FROM vendor_profiles WHERE user_id = ?", (user_id,)).fetchone()
    return VendorProfile(user_id=int(row["user_id"]), **{name: row[name] for name in VENDOR_PROFILE_FIELDS})


def update_vendor_profile(conn: sqlite3.Connection, user_id: int, changes: dict[str, Any]) -> None:
    unknown = [name for name in changes if name not in VENDOR_PROFILE_FIELDS]
    if unknown:
        raise ValueError(f"Unknown vendor profile field(s): {', '.join(unknown)}")
    get_vendor_profile(conn, user_id)
    if not changes:
        return
    assignments = ", ".join(f"{name} = ?" for name in changes)
    _execute_write(
        conn,
        f"UPDATE vendor_profiles SET {assignments}, updated_at = ? WHERE user_id = ?",
        [*changes.values(), utc_now_iso(), user_id],
    )


def _share_link_from_row(row: sqlite3.Row) -> ShareLink:
    return ShareLink(
        id=int(row["id"]),
        user_id=int(row["user_id"]),
        share_token=row["share_token"],
        shared_categories=json.loads(row["shared_categories"] or "[]"),
        markup_percentage=float(row["markup_percentage"] or 0.0),
        markdown_percentage=float(row["markdown_percentage"] or 0.0),
        show_vendor_details=bool(row["show_vendor_details"]),
        is_active=bool(row["is_active"]),
        expires_at=row["expires_at"],
        view_count=int(row["view_count"] or 0),
        created_at=row["created_at"],
    )


def insert_share_link(
    conn: sqlite3.Connection,
    user_id: int,
    share_token: str,
    shared_categories: list[str],
    markup_percentage: float,
    markdown_percentage: float,
    show_vendor_details: bool,
    expires_at: str,
) -> ShareLink:
    cursor = _execute_write(
        conn,
        """
        INSERT INTO share_links
        (user_id, share_token, shared_categories, markup_percentage, markdown_percentage, show_vendor_details, expires_at, created_at)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            user_id,
            share_token,
            json.dumps(shared_categories),
            markup_percentage,
            markdown_percentage,
            1 if show_vendor_details else 0,
            expires_at,
            utc_now_iso(),
        ),
    )
    row = conn.execute("SELECT * FROM share_links WHERE id = ?", (cursor.lastrowid,)).fetchone()
    return _share_link_from_row(row)


def list_share_links(conn: sqlite3.Connection, user_id: int) -> list[ShareLink]:
    rows = conn.execute(
        "SELECT * FROM share_links WHERE user_id = ? ORDER BY id DESC",
        (user_id,),
    ).fetchall()
    return [_share_link_from_row(row) for row in rows]


def get_share_link_by_token(conn: sqlite3.Connection, share_token: str) -> ShareLink | None:
    row = conn.execute(
        "SELECT * FROM share_links WHERE share_token = ? AND is_active = 1",
        (share_token,),
    ).fetchone()
    return _share_link_from_row(row) if row is not None else None


def set_share_link_active(conn: sqlite3.Connection, user_id: int, share_link_id: int, is_active: bool) -> int:
    cursor = _execute_write(
        conn,
        "UPDATE share_links SET is_active = ? WHERE id = ? AND user_id = ?",
        (1 if is_active else 0, share_link_id, user_id),
    )
    return cursor.rowcount


def increment_share_link_views(conn: sqlite3.Connection, share_link_id: int) -> None:
    _execute_write(
        conn,
        "UPDATE share_links SET view_count = view_count + 1 WHERE id = ?",
        (share_link_id,),
    )


def _inquiry_from_row(row: sqlite3.Row) -> PurchaseInquiry:
    return PurchaseInquiry(
        id=int(row["id"]),
        share_link_id=int(row["share_link_id"]),
        product_id=int(row["product_id"]),
        customer_name=row["customer_name"],
        customer_email=row["customer_email"],
        customer_phone=row["customer_phone"],
        message=row["message"],
        quantity=int(row["quantity"] or 1),
        status=row["status"],
        created_at=row["created_at"],
    )


def insert_purchase_inquiry(conn: sqlite3.Connection, inquiry: dict[str, Any]) -> PurchaseInquiry:
    cursor = _execute_write(
        conn,
        """
        INSERT INTO purchase_inquiries
        (share_link_id, product_id, customer_name, customer_email, customer_phone, message, quantity, status, created_at)
        VALUES (?, ?, ?, ?, ?, ?, ?, 'pending', ?)
        """,
        (
            inquiry["share_link_id"],
            inquiry["product_id"],
            inquiry["customer_name"],
            inquiry["customer_email"],
            inquiry.get("customer_phone"),
            inquiry.get("message"),
            inquiry.get("quantity", 1),
            utc_now_iso(),
        ),
    )
    row = conn.execute("SELECT * FROM purchase_inquiries WHERE id = ?", (cursor.lastrowid,)).fetchone()
    return _inquiry_from_row(row)


def list_purchase_inquiries(
    conn: sqlite3.Connection,
    user_id: int,
    status: str | None = None,
) -> list[sqlite3.Row]:
    sql = """
        SELECT
            pi.*,
            p.name AS product_name,
            p.sku AS product_sku,
            p.retail_price AS product_retail_price
        FROM purchase_inquiries pi
        JOIN share_links sl ON sl.id = pi.share_link_id
        LEFT JOIN products p ON p.id = pi.product_id
        WHERE sl.user_id = ?
    """
    params: list[Any] = [user_id]
    if status:
        sql += " AND pi.status = ?"
        params.append(status)
    sql += " ORDER BY pi.id DESC"
    return conn.execute(sql, params).fetchall()


def update_inquiry_status(conn: sqlite3.Connection, user_id: int, inquiry_id: int, status: str) -> int:
    cursor = _execute_write(
        conn,
        """
        UPDATE purchase_inquiries
        SET status = ?
        WHERE id = ?
          AND share_link_id IN (SELECT id FROM share_links WHERE user_id = ?)
        """,
        (status, inquiry_id, user_id),
    )
    return cursor.rowcount


ESTIMATE_COLUMNS = [
    "estimate_name",
    "line_items",
    "status",
    "gold_rate_24k",
    "profit_margin_percentage",
    "total_cost",
    "final_selling_price",
    "customer_name",
    "customer_phone",
    "customer_email",
    "customer_address",
    "notes",
    "invoice_number",
    "invoice_date",
    "invoice_type",
    "payment_terms",
    "payment_due_date",
    "invoice_status",
    "invoice_notes",
    "payment_date",
]


def _estimate_from_row(row: sqlite3.Row) -> Estimate:
    values = {name: row[name] for name in ESTIMATE_COLUMNS}
    values["line_items"] = [LineItem.from_dict(item) for item in json.loads(row["line_items"] or "[]")]
    return Estimate(id=int(row["id"]), user_id=int(row["user_id"]), created_at=row["created_at"], **values)


def _estimate_params(changes: dict[str, Any]) -> dict[str, Any]:
    params = dict(changes)
    if "line_items" in params:
        params["line_items"] = json.dumps([item.to_dict() for item in params["line_items"]])
    return params


def insert_estimate(conn: sqlite3.Connection, user_id: int, estimate: Estimate) -> Estimate:
    params = _estimate_params({name: getattr(estimate, name) for name in ESTIMATE_COLUMNS})
    now = utc_now_iso()
    columns = ["user_id", *params.keys(), "created_at", "updated_at"]
    placeholders = ", ".join("?" for _ in columns)
    cursor = _execute_write(
        conn,
        f"INSERT INTO estimates ({', '.join(columns)}) VALUES ({placeholders})",
        [user_id, *params.values(), now, now],
    )
    return get_estimate(conn, user_id, cursor.lastrowid)


def get_estimate(conn: sqlite3.Connection, user_id: int, estimate_id: int) -> Estimate | None:
    row = conn.execute(
        "SELECT * FROM estimates WHERE id = ? AND user_id = ?",
        (estimate_id, user_id),
    ).fetchone()
    return _estimate_from_row(row) if row is not None else None


def list_estimates(conn: sqlite3.Connection, user_id: int, invoiced_only: bool = False) -> list[Estimate]:
    sql = "SELECT * FROM estimates WHERE user_id = ?"
    if invoiced_only:
        sql += " AND invoice_number IS NOT NULL"
    rows = conn.execute(sql + " ORDER BY id DESC", (user_id,)).fetchall()
    return [_estimate_from_row(row) for row in rows]


def update_estimate(conn: sqlite3.Connection, user_id: int, estimate_id: int, changes: dict[str, Any]) -> int:
    unknown = [column for column in changes if column not in ESTIMATE_COLUMNS]
    if unknown:
        raise ValueError(f"Unknown estimate column(s): {', '.join(unknown)}")
    if not changes:
        return 0
    params = _estimate_params(changes)
    assignments = ", ".join(f"{column} = ?" for column in params)
    cursor = _execute_write(
        conn,
        f"UPDATE estimates SET {assignments}, updated_at = ? WHERE id = ? AND user_id = ?",
        [*params.values(), utc_now_iso(), estimate_id, user_id],
    )
    return cursor.rowcount


def list_invoice_numbers(conn: sqlite3.Connection, user_id: int, starting_with: str) -> list[str]:
    rows = conn.execute(
        "SELECT invoice_number FROM estimates WHERE user_id = ? AND invoice_number LIKE ?",
        (user_id, f"{starting_with}%"),
    ).fetchall()
    return [row["invoice_number"] for row in rows]


def mark_overdue_invoices(conn: sqlite3.Connection, user_id: int, before_date: str) -> int:
    cursor = _execute_write(
        conn,
        """
        UPDATE estimates
        SET invoice_status = 'overdue', updated_at = ?
        WHERE user_id = ?
          AND invoice_number IS NOT NULL
          AND invoice_status = 'pending'
          AND payment_date IS NULL
          AND payment_due_date IS NOT NULL
          AND payment_due_date < ?
        """,
        (utc_now_iso(), user_id, before_date),
    )
    return cursor.rowcount
