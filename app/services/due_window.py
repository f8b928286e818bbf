"""Read documents whose expiry falls inside the look-ahead window."""

from __future__ import annotations

from datetime import date
from typing import List

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

import db
from app.types.reminder_contract import DueDocument, OwnerContact


def to_due_document(document, user, vehicle) -> DueDocument:
    return DueDocument(
        document_id=document.id,
        vehicle_id=document.vehicle_id,
        doc_type=document.doc_type,
        number=document.number,
        expiry_date=document.expiry_date,
        owner=OwnerContact(
            user_id=user.id,
            name=user.name,
            email=user.email,
            whatsapp_number=user.whatsapp_number,
        ),
        vehicle_name=vehicle.name if vehicle is not None else None,
        plate_number=vehicle.plate_number if vehicle is not None else None,
    )


async def scan(
    session_maker: async_sessionmaker[AsyncSession], today: date, horizon_days: int
) -> List[DueDocument]:
    """Documents expiring in [today, today + horizon_days], earliest expiry first."""
    if horizon_days < 0:
        raise ValueError("horizon_days must be non-negative")
    async with db.session_scope(session_maker) as s:
        rows = await db.fetch_documents_in_window(s, today, horizon_days)
    return [to_due_document(doc, user, vehicle) for doc, user, vehicle in rows]
