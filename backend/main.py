import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
import uvicorn
from fastapi.middleware.cors import CORSMiddleware
from core.config import settings
from db.database import Database
from db.migrations import ensure_store_location
from routers.inventory import router as inventory_router
from routers.locations import router as locations_router
from routers.sales import router as sales_router
from routers.transfers import router as transfers_router


def create_app(database_url: Optional[str] = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logging.basicConfig(
            level=settings.log_level,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )
        database = Database(database_url or settings.database_url, echo=settings.database_echo).open()
        await database.create_all()
        await ensure_store_location(database, settings.store_location_name)
        app.state.database = database
        try:
            yield
        finally:
            await database.dispose()

    app = FastAPI(
        title="Bar Stock API",
        description="Multi-location inventory for the store and its bars",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(locations_router, prefix="/locations", tags=["locations"])
    app.include_router(inventory_router, prefix="/inventory", tags=["inventory"])
    app.include_router(transfers_router, prefix="/transfers", tags=["transfers"])
    app.include_router(sales_router, prefix="/sales", tags=["sales"])
    return app


app = create_app()

if __name__ == "__main__":
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
