"""
Resolution of polymorphic share/export targets.

A target is addressed by a (type tag, id) pair. Known tags map to model
classes in TARGET_MODELS; unknown tags never reach the database.
"""
from typing import Dict, Optional, Protocol, Type

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.models.logo_generation import LogoGeneration

TARGET_MODELS: Dict[str, Type[LogoGeneration]] = {
    LogoGeneration.target_type: LogoGeneration,
}


class TargetResolver(Protocol):
    """load(type, id) -> entity or None."""

    def is_known_type(self, target_type: str) -> bool: ...

    async def load(self, target_type: str, target_id: int) -> Optional[LogoGeneration]: ...


class SqlTargetResolver:
    """Loads targets from the database, eager-loading generated logos."""

    def __init__(self, db: AsyncSession, models: Optional[Dict[str, type]] = None):
        self.db = db
        self.models = models if models is not None else TARGET_MODELS

    def is_known_type(self, target_type: str) -> bool:
        return target_type in self.models

    async def load(self, target_type: str, target_id: int) -> Optional[LogoGeneration]:
        model = self.models.get(target_type)
        if model is None:
            return None
        result = await self.db.execute(
            select(model)
            .where(model.id == target_id)
            .options(selectinload(model.generated_logos))
        )
        return result.scalar_one_or_none()
