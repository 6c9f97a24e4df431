"""Base CRUD service.

Services receive the request's ``AsyncSession`` explicitly; they flush but
never commit. The caller (request dependency or script) owns the transaction.
"""

from typing import Any, Generic, Optional, Type, TypeVar

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import NotFoundError
from db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(Generic[ModelType]):
    """Generic CRUD service for any SQLAlchemy model.

    Usage:
        class RoleService(BaseService[Role]):
            def __init__(self, db: AsyncSession):
                super().__init__(Role, db)
    """

    not_found_message = "Resource not found"

    def __init__(self, model: Type[ModelType], db: AsyncSession):
        self.model = model
        self.db = db

    # ─── Read ──────────────────────────────────────────────

    async def get_by_id(self, id: str) -> Optional[ModelType]:
        """Get a single record by ID."""
        result = await self.db.execute(select(self.model).where(self.model.id == id))
        return result.scalar_one_or_none()

    async def get_or_404(self, id: str) -> ModelType:
        instance = await self.get_by_id(id)
        if instance is None:
            raise NotFoundError(self.not_found_message)
        return instance

    # ─── Create ────────────────────────────────────────────

    async def create(self, data: dict[str, Any]) -> ModelType:
        """Create a new record, flushed so its id and defaults are populated."""
        instance = self.model(**data)
        self.db.add(instance)
        await self.db.flush()
        return instance

    # ─── Update ────────────────────────────────────────────

    async def apply_changes(self, instance: ModelType, data: dict[str, Any]) -> ModelType:
        """Set the given fields (None values are skipped) and flush."""
        for key, value in data.items():
            if value is not None and hasattr(instance, key):
                setattr(instance, key, value)
        await self.db.flush()
        return instance

    # ─── Delete ────────────────────────────────────────────

    async def hard_delete(self, instance: ModelType) -> None:
        await self.db.delete(instance)
        await self.db.flush()
