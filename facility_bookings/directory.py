"""
Resource directory: the engine's only way to look up courts and trainers.

Passed into the CRUD classes so tests can substitute their own. The default
implementation reads the `courts` / `trainers` tables and, with `lock=True`,
takes a row lock so that concurrent bookings for the same resource serialize
on it for the rest of the transaction.
"""

from __future__ import annotations

from typing import Protocol
from uuid import UUID

from facility_bookings.errors import NotFound
from facility_bookings.models import Court, Trainer


class ResourceDirectory(Protocol):
    async def find_court(
        self, company_id: UUID, court_id: UUID, lock: bool = False
    ) -> Court: ...

    async def find_trainer(
        self, company_id: UUID, trainer_id: UUID, lock: bool = False
    ) -> Trainer: ...


class TortoiseResourceDirectory:
    async def find_court(
        self, company_id: UUID, court_id: UUID, lock: bool = False
    ) -> Court:
        qs = Court.filter(id=court_id, company_id=company_id, deleted_at__isnull=True)
        if lock:
            qs = qs.select_for_update()
        court = await qs.first()
        if court is None:
            raise NotFound("Court not found", {"court_id": str(court_id)})
        return court

    async def find_trainer(
        self, company_id: UUID, trainer_id: UUID, lock: bool = False
    ) -> Trainer:
        qs = Trainer.filter(
            id=trainer_id, company_id=company_id, deleted_at__isnull=True
        )
        if lock:
            qs = qs.select_for_update()
        trainer = await qs.first()
        if trainer is None:
            raise NotFound("Trainer not found", {"trainer_id": str(trainer_id)})
        return trainer


resource_directory = TortoiseResourceDirectory()
