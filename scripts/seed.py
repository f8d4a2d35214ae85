"""
Initialises the local SQLite databases and ensures default settings exist.
Run this once before first use, or anytime to repair missing tables.

    python scripts/seed.py            # tables and settings only
    python scripts/seed.py --demo     # plus a demo vendor with sample products
"""

import argparse

from cataleon.db import (
    add_product,
    authenticate_user,
    create_user,
    get_auth_connection,
    open_catalog_db,
    update_vendor_profile,
)
from cataleon.models import Product

DEMO_USERNAME = "demo"
DEMO_PASSWORD = "demo-password"

DEMO_PRODUCTS = [
    Product(id=None, name="Solitaire Ring 1", sku="CLR101", category="Ladies Rings", metal_type="Gold",
            gemstone="F VS1", diamond_color="F", diamond_clarity="VS1", weight_grams=4.2, net_weight=4.0,
            purity_fraction_used=0.75, purity_unit="fraction", diamond_weight=0.5, d_value=42000,
            mkg=3200, cost_price=67000, retail_price=67000, stock_quantity=2, delivery_type="immediate delivery"),
    Product(id=None, name="Solitaire Ring 2", sku="CLR102", category="Ladies Rings", metal_type="Gold",
            gemstone="G VS2", diamond_color="G", diamond_clarity="VS2", weight_grams=3.8, net_weight=3.6,
            purity_fraction_used=0.75, purity_unit="fraction", diamond_weight=0.4, d_value=30000,
            mkg=2900, cost_price=52000, retail_price=52000, stock_quantity=1, delivery_type="immediate delivery"),
    Product(id=None, name="Tennis Bracelet", sku="CBR201", category=None, metal_type="Platinum",
            gemstone="E VVS2", diamond_color="E", diamond_clarity="VVS2", weight_grams=12.5, net_weight=11.9,
            purity_fraction_used=0.95, purity_unit="fraction", diamond_weight=3.0, d_value=240000,
            mkg=9000, cost_price=285000, retail_price=285000, stock_quantity=1,
            delivery_type="Despatches in 5 working days", dispatches_in_days=5),
    Product(id=None, name="Round 1.01ct G VS2", sku="LD-001", product_type="Loose Diamonds", shape="Round",
            carat=1.01, diamond_type="Natural", color="G", diamond_color="G", diamond_clarity="VS2", clarity="VS2", cut="Excellent",
            lab="GIA", cost_price=480000, retail_price=520000, stock_quantity=1),
]


def seed_demo(conn) -> None:
    auth_conn = get_auth_connection()
    session = authenticate_user(auth_conn, DEMO_USERNAME, DEMO_PASSWORD)
    if session is None:
        session, message = create_user(auth_conn, DEMO_USERNAME, DEMO_PASSWORD)
        if session is None:
            raise SystemExit(message)

    update_vendor_profile(
        conn,
        session.user_id,
        {
            "business_name": "Demo Jewellers",
            "city": "Mumbai",
            "state": "Maharashtra",
            "gold_rate_24k_per_gram": 7200.0,
            "making_charges_per_gram": 800.0,
        },
    )
    for product in DEMO_PRODUCTS:
        add_product(conn, session.user_id, product)
    print(f"Demo vendor '{DEMO_USERNAME}' seeded with {len(DEMO_PRODUCTS)} products.")


def main() -> None:
    parser = argparse.ArgumentParser(description="Initialise the Cataleon database.")
    parser.add_argument("--demo", action="store_true", help="create a demo vendor with sample products")
    args = parser.parse_args()

    conn = open_catalog_db()
    get_auth_connection()
    if args.demo:
        seed_demo(conn)
    print("Database initialised successfully.")


if __name__ == "__main__":
    main()
