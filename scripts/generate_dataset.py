"""
Sales Transaction Dataset Generator
Generates synthetic transactions for the warehouse loader using vectorized operations
"""

import argparse
from datetime import date, timedelta
from pathlib import Path

import numpy as np
import polars as pl
from faker import Faker

fake = Faker()
np.random.seed(42)
Faker.seed(42)

OUTPUT_DIR = Path(__file__).parent.parent / "data" / "generated"


# ==========================================
# MASTER DATA
# ==========================================
def generate_master_data(n_customers=500, n_stores=10, n_suppliers=20, n_products=200):
    print("📊 Generating master data...")

    customers = pl.DataFrame({
        "customer_id": [f"C-{i:06d}" for i in range(1, n_customers + 1)],
        "customer_name": [fake.name() for _ in range(n_customers)],
    })
    stores = pl.DataFrame({
        "store_id": [f"S-{i:03d}" for i in range(1, n_stores + 1)],
        "store_name": [f"{fake.city()} Store" for _ in range(n_stores)],
    })
    suppliers = pl.DataFrame({
        "supplier_id": [f"SP-{i:04d}" for i in range(1, n_suppliers + 1)],
        "supplier_name": [fake.company() for _ in range(n_suppliers)],
    })
    # Each product comes from one supplier at a list price
    products = pl.DataFrame({
        "product_id": [f"P-{i:05d}" for i in range(1, n_products + 1)],
        "product_name": [f"{fake.word().title()} {fake.word().title()}" for _ in range(n_products)],
        "supplier_index": np.random.randint(0, n_suppliers, n_products),
        "price": np.round(np.random.uniform(1, 250, n_products), 2),
    })

    print(f"   ✅ {n_customers:,} customers, {n_stores} stores, "
          f"{n_suppliers} suppliers, {n_products:,} products")
    return customers, stores, suppliers, products


# ==========================================
# TRANSACTIONS - VECTORIZED!
# ==========================================
def generate_transactions(n, customers, stores, suppliers, products, days=365):
    print(f"📊 Generating {n:,} transactions (vectorized)...")

    customer_idx = np.random.randint(0, customers.height, n)
    store_idx = np.random.randint(0, stores.height, n)
    product_idx = np.random.randint(0, products.height, n)
    supplier_idx = products["supplier_index"].to_numpy()[product_idx]

    start = date.today() - timedelta(days=days)
    sale_dates = [start + timedelta(days=int(d)) for d in np.random.randint(0, days, n)]

    quantities = np.random.randint(1, 10, n)
    prices = products["price"].to_numpy()[product_idx]

    df = pl.DataFrame({
        "transaction_id": [f"T-{i:08d}" for i in range(1, n + 1)],
        "customer_id": customers["customer_id"].to_numpy()[customer_idx],
        "customer_name": customers["customer_name"].to_numpy()[customer_idx],
        "store_id": stores["store_id"].to_numpy()[store_idx],
        "store_name": stores["store_name"].to_numpy()[store_idx],
        "supplier_id": suppliers["supplier_id"].to_numpy()[supplier_idx],
        "supplier_name": suppliers["supplier_name"].to_numpy()[supplier_idx],
        "product_id": products["product_id"].to_numpy()[product_idx],
        "product_name": products["product_name"].to_numpy()[product_idx],
        "sale_date": sale_dates,
        "quantity": quantities,
        "price": prices,
    })
    return df.with_columns(
        (pl.col("price") * pl.col("quantity")).round(2).alias("total_sale")
    )


# ==========================================
# MAIN
# ==========================================
def main():
    parser = argparse.ArgumentParser(description="Generate synthetic sales transactions")
    parser.add_argument("--rows", type=int, default=10000, help="Number of transactions")
    parser.add_argument("--output", default=str(OUTPUT_DIR / "transactions.csv"), help="Output file")
    args = parser.parse_args()

    print("=" * 60)
    print("🛒 Sales Transaction Dataset Generator")
    print("=" * 60 + "\n")

    customers, stores, suppliers, products = generate_master_data()
    df = generate_transactions(args.rows, customers, stores, suppliers, products)

    output = Path(args.output)
    output.parent.mkdir(parents=True, exist_ok=True)
    if output.suffix == ".parquet":
        df.write_parquet(output)
    else:
        df.write_csv(output)

    size = output.stat().st_size / 1024 / 1024
    print(f"\n✅ {output.name}: {df.height:,} rows ({size:.2f} MB)")
    print(f"📁 Output: {output.parent}\n")


if __name__ == "__main__":
    main()
