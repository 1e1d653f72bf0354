"""
Catalog Lookup

Resolves human-readable food and place names to their row ids.
The catalog is read-only from the order workflow's point of view.
"""

import enum
import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from order_manager.core.errors import NotFoundError
from order_manager.models import Food, Place

logger = logging.getLogger(__name__)


class CatalogKind(str, enum.Enum):
    FOOD = "food"
    PLACE = "place"


_CATALOG_MODELS = {
    CatalogKind.FOOD: Food,
    CatalogKind.PLACE: Place,
}


async def resolve(session: AsyncSession, kind: CatalogKind, name: str) -> int:
    """
    Return the id of the first catalog entry of ``kind`` called ``name``.

    Args:
        session: Session of the caller's unit of work
        kind: Which catalog to search
        name: Display name to match exactly

    Raises:
        NotFoundError: No entry matches
    """
    model = _CATALOG_MODELS[kind]
    result = await session.execute(
        select(model.id).where(model.name == name).order_by(model.id).limit(1)
    )
    catalog_id = result.scalar_one_or_none()

    if catalog_id is None:
        logger.debug(f"Catalog miss: {kind.value} '{name}'")
        raise NotFoundError(f"Unknown {kind.value}: {name}")

    return catalog_id
