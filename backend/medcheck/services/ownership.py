"""
MedCheck Backend - Owner-Scoped Lookups
=======================================

Every table carries `user_id`; every read goes through a filter on it. A row
that exists but belongs to someone else is indistinguishable from a missing
row: both raise NotFoundError.
"""

from typing import Any, Type, TypeVar
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from medcheck.exceptions import NotFoundError

ModelT = TypeVar("ModelT")


def owned(model: Type[Any], user_id: UUID):
    """SELECT ... WHERE model.user_id = :user_id"""
    return select(model).where(model.user_id == user_id)


async def get_owned(
    db: AsyncSession, model: Type[ModelT], user_id: UUID, row_id: UUID, resource: str
) -> ModelT:
    result = await db.execute(owned(model, user_id).where(model.id == row_id))
    row = result.scalar_one_or_none()
    if row is None:
        raise NotFoundError(resource=resource, resource_id=str(row_id))
    return row
