from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from boxoffice.audit.models import Actor, AuditAction, RequestContext
from boxoffice.errors import Conflict, Forbidden, InvalidArgument, NotFound

from .models import StockEntry, StockKey, violates_capacity

if TYPE_CHECKING:
    from boxoffice.unit_of_work import UnitOfWorkFactory

logger = logging.getLogger(__name__)

STOCK_TARGET = "pos_pass_stock"
_FIELDS = ("max_quantity", "sold_quantity", "is_active")


class StockService:
    """Administrative stock operations. Each call writes exactly one audit entry."""

    def __init__(self, uow_factory: UnitOfWorkFactory) -> None:
        self._uow_factory = uow_factory

    async def list_entries(self, *, outlet_id: str, event_id: str | None = None) -> list[StockEntry]:
        if not outlet_id:
            raise InvalidArgument("outlet_id is required")
        async with self._uow_factory() as uow:
            return await uow.stock.list_entries(outlet_id=outlet_id, event_id=event_id)

    async def create_entry(
        self,
        key: StockKey,
        *,
        max_quantity: int | None,
        sold_quantity: int = 0,
        actor: Actor,
        context: RequestContext | None = None,
    ) -> StockEntry:
        if max_quantity is not None and max_quantity < 0:
            raise InvalidArgument("max_quantity cannot be negative")
        if sold_quantity < 0:
            raise InvalidArgument("sold_quantity cannot be negative")
        if violates_capacity(max_quantity, sold_quantity):
            raise InvalidArgument("sold_quantity cannot exceed max_quantity")

        async with self._uow_factory() as uow:
            if await uow.stock.get_by_key(key) is not None:
                raise Conflict(
                    "This pass type already has stock for this outlet and event. "
                    "Use Edit to update (max must be >= sold)."
                )
            entry = await uow.stock.add(key, max_quantity=max_quantity, sold_quantity=sold_quantity)
            await uow.audit.append(
                action=AuditAction.CREATE_STOCK,
                actor=actor,
                target_type=STOCK_TARGET,
                target_id=entry.id,
                outlet_id=key.outlet_id,
                details={
                    "event_id": key.event_id,
                    "pass_id": key.pass_id,
                    "max_quantity": max_quantity,
                    "sold_quantity": sold_quantity,
                },
                context=context,
            )
            await uow.commit()
        logger.info("Created stock %s for %s", entry.id, key)
        return entry

    async def update_entry(
        self,
        entry_id: str,
        changes: dict[str, Any],
        *,
        actor: Actor,
        context: RequestContext | None = None,
    ) -> StockEntry:
        """Apply ``changes`` (any of max_quantity, sold_quantity, is_active).

        Keys absent from ``changes`` keep their stored value; a present
        ``max_quantity`` of ``None`` makes the entry unlimited.
        """

        unknown = set(changes) - set(_FIELDS)
        if unknown:
            raise InvalidArgument(f"Unknown stock fields: {', '.join(sorted(unknown))}")
        if changes.get("max_quantity") is not None and changes["max_quantity"] < 0:
            raise InvalidArgument("max_quantity cannot be negative")

        async with self._uow_factory() as uow:
            old = await uow.stock.get(entry_id)
            if old is None:
                raise NotFound("Stock row not found")

            new_max = changes.get("max_quantity", old.max_quantity)
            new_sold = changes.get("sold_quantity", old.sold_quantity)
            if violates_capacity(new_max, new_sold):
                raise InvalidArgument(
                    f"max_quantity cannot be less than sold_quantity ({new_sold} sold). "
                    "Remaining = max - sold."
                )

            applied = await uow.stock.update(entry_id, **changes)
            if not applied:
                # Sales moved the sold counter between the read and the guarded write.
                current = await uow.stock.get(entry_id)
                if current is None:
                    raise NotFound("Stock row not found")
                raise InvalidArgument(
                    f"max_quantity cannot be less than sold_quantity ({current.sold_quantity} sold). "
                    "Remaining = max - sold."
                )

            entry = await uow.stock.get(entry_id)
            if entry is None:
                raise NotFound("Stock row not found")
            await uow.audit.append(
                action=AuditAction.UPDATE_STOCK,
                actor=actor,
                target_type=STOCK_TARGET,
                target_id=entry_id,
                outlet_id=old.outlet_id,
                details={
                    "old": {field: getattr(old, field) for field in _FIELDS},
                    "new": dict(changes),
                },
                context=context,
            )
            await uow.commit()
        return entry

    async def list_sellable(
        self,
        *,
        outlet_slug: str,
        event_id: str,
        operator_outlet_id: str | None = None,
    ) -> list[StockEntry]:
        """Active entries an outlet can sell for ``event_id``, with pass name and price."""

        async with self._uow_factory() as uow:
            outlet = await uow.catalog.get_outlet_by_slug(outlet_slug)
            if outlet is None:
                raise NotFound("Outlet not found or inactive")
            if operator_outlet_id is not None and operator_outlet_id != outlet.id:
                raise Forbidden("Operator is not assigned to this outlet")
            return await uow.stock.list_entries(outlet_id=outlet.id, event_id=event_id, active_only=True)
