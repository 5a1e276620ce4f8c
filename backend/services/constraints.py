"""
Item compatibility constraints: registry CRUD and cart validation.

Presence in a cart is tracked as a set of (item type, id) pairs, so a
PRODUCT constraint never matches an ADDITIONAL with the same id.
"""

from typing import Iterable, List, Optional, Sequence, Set, Tuple
from uuid import UUID

from sqlalchemy import or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from core.app_logging import get_logger
from core.exceptions import ConstraintViolation, NotFoundError, StoreUnavailableError, ValidationError
from db.database import ItemConstraint as ItemConstraintModel
from db.retry import with_retry
from schemas.cart import CartLine
from schemas.constraint import ConstraintValidationResult, ItemConstraintCreate, ItemConstraintUpdate

logger = get_logger(__name__)

PRODUCT = "PRODUCT"
ADDITIONAL = "ADDITIONAL"
MUTUALLY_EXCLUSIVE = "MUTUALLY_EXCLUSIVE"
REQUIRES = "REQUIRES"

Presence = Set[Tuple[str, UUID]]


def cart_presence(cart_lines: Iterable[CartLine]) -> Presence:
    present: Presence = set()
    for line in cart_lines:
        if line.product_id is not None:
            present.add((PRODUCT, line.product_id))
        if line.additional_id is not None:
            present.add((ADDITIONAL, line.additional_id))
        for additional in line.additionals:
            present.add((ADDITIONAL, additional.additional_id))
    return present


def _default_message(constraint: ItemConstraintModel) -> str:
    if constraint.constraint_type == MUTUALLY_EXCLUSIVE:
        return (
            f'Items "{constraint.target_item_id}" and "{constraint.related_item_id}" '
            f"cannot be added together."
        )
    return f'Item "{constraint.target_item_id}" requires "{constraint.related_item_id}".'


def evaluate_constraints(constraints: Iterable[ItemConstraintModel], present: Presence) -> List[str]:
    """Violation messages for `constraints` against the cart presence set.

    Unknown constraint types never produce a violation.
    """
    violations: List[str] = []
    for constraint in constraints:
        target_present = (constraint.target_item_type, constraint.target_item_id) in present
        related_present = (constraint.related_item_type, constraint.related_item_id) in present

        if constraint.constraint_type == MUTUALLY_EXCLUSIVE:
            violated = target_present and related_present
        elif constraint.constraint_type == REQUIRES:
            violated = target_present and not related_present
        else:
            violated = False

        if violated:
            violations.append(constraint.message or _default_message(constraint))
    return violations


async def validate_cart(db: AsyncSession, cart_lines: Sequence[CartLine]) -> ConstraintValidationResult:
    present = cart_presence(cart_lines)
    if not present:
        return ConstraintValidationResult(valid=True, violations=[])

    ids = list({item_id for _type, item_id in present})

    async def _query():
        res = await db.execute(
            select(ItemConstraintModel)
            .where(
                or_(
                    ItemConstraintModel.target_item_id.in_(ids),
                    ItemConstraintModel.related_item_id.in_(ids),
                )
            )
            .order_by(ItemConstraintModel.created_at, ItemConstraintModel.id)
        )
        return res.scalars().all()

    try:
        rules = await with_retry(_query, session=db)
    except SQLAlchemyError as e:
        await db.rollback()
        raise StoreUnavailableError(f"Failed to load item constraints: {e}", cause=e) from e

    violations = evaluate_constraints(rules, present)
    if violations:
        logger.info("cart rejected by constraints", extra={"violations": violations})
    return ConstraintValidationResult(valid=not violations, violations=violations)


async def ensure_cart_valid(db: AsyncSession, cart_lines: Sequence[CartLine]) -> None:
    result = await validate_cart(db, cart_lines)
    if not result.valid:
        raise ConstraintViolation(result.violations)


# Registry

async def _find_duplicate(
    db: AsyncSession, values: dict, exclude_id: Optional[UUID] = None
) -> Optional[ItemConstraintModel]:
    stmt = select(ItemConstraintModel).where(
        ItemConstraintModel.target_item_id == values["target_item_id"],
        ItemConstraintModel.target_item_type == values["target_item_type"],
        ItemConstraintModel.related_item_id == values["related_item_id"],
        ItemConstraintModel.related_item_type == values["related_item_type"],
        ItemConstraintModel.constraint_type == values["constraint_type"],
    )
    if exclude_id is not None:
        stmt = stmt.where(ItemConstraintModel.id != exclude_id)
    res = await db.execute(stmt)
    return res.scalars().first()


def _check_not_self_referencing(values: dict) -> None:
    if (
        values["target_item_id"] == values["related_item_id"]
        and values["target_item_type"] == values["related_item_type"]
    ):
        raise ValidationError("An item cannot have a constraint with itself")


async def create_constraint(db: AsyncSession, payload: ItemConstraintCreate) -> ItemConstraintModel:
    values = payload.model_dump()
    _check_not_self_referencing(values)
    if await _find_duplicate(db, values):
        raise ValidationError("This constraint already exists")

    model = ItemConstraintModel(**values)
    db.add(model)
    await db.commit()
    await db.refresh(model)
    return model


async def get_constraint(db: AsyncSession, constraint_id: UUID) -> ItemConstraintModel:
    model = await db.get(ItemConstraintModel, constraint_id)
    if model is None:
        raise NotFoundError(f"Constraint {constraint_id} not found")
    return model


async def get_item_constraints(db: AsyncSession, item_id: UUID, item_type: str) -> List[ItemConstraintModel]:
    """Constraints in which the item takes part, as target or as related item."""
    res = await db.execute(
        select(ItemConstraintModel)
        .where(
            or_(
                (ItemConstraintModel.target_item_id == item_id)
                & (ItemConstraintModel.target_item_type == item_type),
                (ItemConstraintModel.related_item_id == item_id)
                & (ItemConstraintModel.related_item_type == item_type),
            )
        )
        .order_by(ItemConstraintModel.created_at.desc())
    )
    return list(res.scalars().all())


async def update_constraint(
    db: AsyncSession, constraint_id: UUID, payload: ItemConstraintUpdate
) -> ItemConstraintModel:
    model = await get_constraint(db, constraint_id)
    changes = payload.model_dump(exclude_unset=True)

    values = {
        "target_item_id": model.target_item_id,
        "target_item_type": model.target_item_type,
        "related_item_id": model.related_item_id,
        "related_item_type": model.related_item_type,
        "constraint_type": model.constraint_type,
    }
    values.update({k: v for k, v in changes.items() if k in values and v is not None})
    _check_not_self_referencing(values)
    if await _find_duplicate(db, values, exclude_id=model.id):
        raise ValidationError("This constraint already exists")

    for key, value in values.items():
        setattr(model, key, value)
    if "message" in changes:
        message = (changes["message"] or "").strip()
        model.message = message or None

    await db.commit()
    await db.refresh(model)
    return model


async def delete_constraint(db: AsyncSession, constraint_id: UUID) -> None:
    model = await get_constraint(db, constraint_id)
    await db.delete(model)
    await db.commit()


async def list_constraints(db: AsyncSession) -> List[ItemConstraintModel]:
    res = await db.execute(select(ItemConstraintModel).order_by(ItemConstraintModel.created_at.desc()))
    return list(res.scalars().all())
