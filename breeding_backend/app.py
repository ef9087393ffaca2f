import logging
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from .routes import health, breeding
from .config import USE_POSTGRES, LOG_LEVEL

logging.basicConfig(
    level=LOG_LEVEL,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Breeding Backend", version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Database initialization (PostgreSQL)
if USE_POSTGRES:
    @app.on_event("startup")
    async def startup_event():
        """Initialize database connection pool and breeding tables on startup"""
        from .db_postgres import init_db_pool, init_schema
        await init_db_pool()
        await init_schema()

    @app.on_event("shutdown")
    async def shutdown_event():
        """Close database connection pool on shutdown"""
        from .db_postgres import close_db_pool
        await close_db_pool()

app.include_router(health.router)
app.include_router(breeding.router)

# Run with: uvicorn breeding_backend.app:app --host 0.0.0.0 --port 8000
