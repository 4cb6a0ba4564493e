"""Repository for maintenance stock."""

from __future__ import annotations

from typing import Any

from ..models.entities import InventoryItem, utcnow
from .errors import ValidationError
from .repository import Repository


class InventoryRepository(Repository[InventoryItem]):
    """Inventory items; ``lastUpdated`` is stamped on every create and update."""

    entity_class = InventoryItem

    async def prepare_create(self, values: dict[str, Any]) -> dict[str, Any]:
        values["last_updated"] = utcnow()
        return values

    async def prepare_update(self, current: InventoryItem, changes: dict[str, Any]) -> dict[str, Any]:
        changes["last_updated"] = utcnow()
        return changes

    async def adjust_quantity(self, item_id: str, delta: int) -> InventoryItem:
        """Apply a stock movement (positive to restock, negative to consume)."""

        if isinstance(delta, bool) or not isinstance(delta, int):
            raise ValidationError("Quantity adjustments must be whole numbers.", self.namespace, item_id)

        def _apply(current: InventoryItem) -> dict[str, Any]:
            quantity = current.quantity + delta
            if quantity < 0:
                raise ValidationError(
                    f"Only {current.quantity} {current.unit} of '{current.name}' in stock.",
                    self.namespace,
                    item_id,
                )
            return {"quantity": quantity}

        return await self.modify(item_id, _apply)

    async def list_by_category(self, category: str) -> list[InventoryItem]:
        return [item for item in await self.get_all() if item.category == category]

    async def list_low_stock(self, threshold: int) -> list[InventoryItem]:
        """Items at or below ``threshold``."""

        return [item for item in await self.get_all() if item.quantity <= threshold]
