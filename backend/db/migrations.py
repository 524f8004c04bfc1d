"""Startup data fixes"""
import logging

from sqlalchemy import select

from .database import Database, unit_of_work
from .location import STORE, Location

logger = logging.getLogger(__name__)


async def ensure_store_location(database: Database, name: str) -> Location:
    """Create the central store row if this database has none yet."""
    async with database.session() as session:
        async with unit_of_work(session):
            res = await session.execute(select(Location).where(Location.kind == STORE))
            store = res.scalars().first()
            if store is None:
                logger.info("Creating store location %r", name)
                store = Location(name=name, kind=STORE, description="Central store")
                session.add(store)
            else:
                logger.info("Store location already exists (%s)", store.name)
    return store
