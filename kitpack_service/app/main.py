import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from shared.core.config import settings
from shared.core.database import kitpack_engine, Base
from shared.exception_handler import setup_exception_handlers

from .models.kit_catalog import categories, components, kits, kit_components
from .models.barcodes import barcodes, scan_history, packing_sessions
from .router.kit_catalog import categories_router, components_router, kits_router
from .router.barcodes import barcodes_router, history_router
from .router.packing import boxes_router, scan_batches_router

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(title="Kit Packing Service API")

# Create all tables
Base.metadata.create_all(bind=kitpack_engine)

origins = [origin.strip() for origin in settings.CORS_ORIGINS.split(",") if origin.strip()]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

setup_exception_handlers(app)

# Include routers
app.include_router(categories_router.router)
app.include_router(components_router.router)
app.include_router(kits_router.router)
app.include_router(barcodes_router.router)
app.include_router(history_router.router)
app.include_router(boxes_router.router)
app.include_router(scan_batches_router.router)


@app.get("/api/health")
def health():
    return {"status": "ok"}
