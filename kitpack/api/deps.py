"""
FastAPI dependencies for database sessions and the packing service.

The undo manager is created once at application start and kept on
``app.state`` so that every request shares the same pending compensation.
"""

from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from kitpack.core.config import get_settings
from kitpack.database.connection import get_db
from kitpack.services.packing.service import PackingService
from kitpack.services.packing.store import SqlAlchemyPackingStore
from kitpack.services.packing.undo import UndoManager

DatabaseSession = Annotated[AsyncSession, Depends(get_db)]


def get_undo_manager(request: Request) -> UndoManager:
    """
    Return the application's undo manager.

    Args:
        request: Incoming request

    Returns:
        UndoManager held on ``app.state``
    """
    return request.app.state.undo_manager


async def get_packing_service(
    db: DatabaseSession,
    undo_manager: Annotated[UndoManager, Depends(get_undo_manager)],
) -> PackingService:
    """Build a packing service bound to the request's database session."""
    return PackingService(
        store=SqlAlchemyPackingStore(db),
        undo_manager=undo_manager,
        settings=get_settings(),
    )


PackingServiceDep = Annotated[PackingService, Depends(get_packing_service)]
