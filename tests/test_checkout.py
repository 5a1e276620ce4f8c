import pytest

from core.exceptions import ConstraintViolation, InsufficientStockError
from db.database import Item, Product
from schemas.cart import CartAdditional, CartLine
from schemas.constraint import ItemConstraintCreate
from services import constraints
from services.checkout import check_out


@pytest.fixture
async def shop(db, make_item, make_product):
    """Ids of rose, vase, card and bouquet (6 roses, requires a vase)."""
    rose = await make_item("rose", 12)
    vase = await make_item("vase", 2)
    card = await make_item("card", 10)
    bouquet = await make_product("bouquet", [(rose, 6)])
    ids = rose.id, vase.id, card.id, bouquet.id
    await constraints.create_constraint(
        db,
        ItemConstraintCreate(
            target_item_id=bouquet.id,
            target_item_type="PRODUCT",
            constraint_type="REQUIRES",
            related_item_id=vase.id,
            related_item_type="ADDITIONAL",
            message="A bouquet ships in a vase",
        ),
    )
    await constraints.create_constraint(
        db,
        ItemConstraintCreate(
            target_item_id=vase.id,
            target_item_type="ADDITIONAL",
            constraint_type="MUTUALLY_EXCLUSIVE",
            related_item_id=card.id,
            related_item_type="ADDITIONAL",
        ),
    )
    return ids


class TestCheckOut:
    async def test_valid_cart_is_decremented(self, db, shop, fresh):
        rose_id, vase_id, _card_id, bouquet_id = shop

        result = await check_out(
            db, [CartLine(product_id=bouquet_id, additionals=[CartAdditional(additional_id=vase_id)])]
        )

        assert result.accepted
        assert result.stock == {bouquet_id: 1}
        assert (await fresh(Item, rose_id)).stock_quantity == 6
        assert (await fresh(Item, vase_id)).stock_quantity == 1

    async def test_constraint_violation_writes_nothing(self, db, shop, fresh):
        rose_id, vase_id, card_id, bouquet_id = shop

        with pytest.raises(ConstraintViolation) as exc:
            await check_out(
                db,
                [
                    CartLine(
                        product_id=bouquet_id,
                        additionals=[CartAdditional(additional_id=vase_id), CartAdditional(additional_id=card_id)],
                    )
                ],
            )

        assert len(exc.value.violations) == 1
        assert (await fresh(Item, rose_id)).stock_quantity == 12
        assert (await fresh(Item, vase_id)).stock_quantity == 2
        assert (await fresh(Item, card_id)).stock_quantity == 10
        assert (await fresh(Product, bouquet_id)).stock_quantity == 2

    async def test_missing_requirement(self, db, shop):
        _rose_id, _vase_id, _card_id, bouquet_id = shop
        with pytest.raises(ConstraintViolation) as exc:
            await check_out(db, [CartLine(product_id=bouquet_id)])
        assert exc.value.violations == ["A bouquet ships in a vase"]

    async def test_valid_cart_with_shortage(self, db, shop, fresh):
        rose_id, vase_id, _card_id, bouquet_id = shop
        with pytest.raises(InsufficientStockError):
            await check_out(
                db,
                [CartLine(product_id=bouquet_id, quantity=3, additionals=[CartAdditional(additional_id=vase_id)])],
            )
        assert (await fresh(Item, rose_id)).stock_quantity == 12
        assert (await fresh(Item, vase_id)).stock_quantity == 2
