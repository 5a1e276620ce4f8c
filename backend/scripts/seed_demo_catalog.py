"""
Seed a small demo catalog: items, component-built products, a standalone
product and a couple of item constraints.

Run from the backend directory:
  PYTHONPATH=. python scripts/seed_demo_catalog.py
"""

from __future__ import annotations

import asyncio

from db.database import async_session_maker, create_db_and_tables
from schemas.constraint import ItemConstraintCreate
from schemas.item import ItemCreate
from schemas.product import ComponentCreate, ProductCreate
from services import catalog, constraints


ITEMS = [
    ("Red rose", 40),
    ("Gift box", 12),
    ("Chocolate bar", 25),
    ("Greeting card", 60),
    ("Balloon", 8),
]

# product name -> [(item name, quantity per unit)]
PRODUCTS = {
    "Rose bouquet": [("Red rose", 12), ("Greeting card", 1)],
    "Sweet box": [("Gift box", 1), ("Chocolate bar", 4)],
}


async def main() -> None:
    await create_db_and_tables()
    async with async_session_maker() as db:
        items = {}
        for name, stock in ITEMS:
            items[name] = await catalog.create_item(db, ItemCreate(name=name, stock_quantity=stock))

        products = {}
        for name, components in PRODUCTS.items():
            product = await catalog.create_product(db, ProductCreate(name=name))
            for item_name, qty in components:
                await catalog.add_component(db, product.id, ComponentCreate(item_id=items[item_name].id, quantity=qty))
            products[name] = await catalog.get_product(db, product.id)

        standalone = await catalog.create_product(db, ProductCreate(name="Gift voucher", stock_quantity=100))

        await constraints.create_constraint(
            db,
            ItemConstraintCreate(
                target_item_id=products["Sweet box"].id,
                target_item_type="PRODUCT",
                constraint_type="MUTUALLY_EXCLUSIVE",
                related_item_id=items["Balloon"].id,
                related_item_type="ADDITIONAL",
                message="Balloons cannot be shipped with the sweet box.",
            ),
        )
        await constraints.create_constraint(
            db,
            ItemConstraintCreate(
                target_item_id=standalone.id,
                target_item_type="PRODUCT",
                constraint_type="REQUIRES",
                related_item_id=items["Greeting card"].id,
                related_item_type="ADDITIONAL",
            ),
        )

        for name, product in products.items():
            print(f"{name}: derived stock {product.stock_quantity}")
        print(f"Seeded items: {len(items)}, products: {len(products) + 1}, constraints: 2")


if __name__ == "__main__":
    asyncio.run(main())
