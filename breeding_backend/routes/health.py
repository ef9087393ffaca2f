from fastapi import APIRouter
from ..config import USE_POSTGRES

router = APIRouter()


@router.get("/health")
async def health():
    if not USE_POSTGRES:
        return {"ok": True, "database": "memory"}
    from ..db_postgres import health_check
    db = await health_check()
    return {"ok": db["status"] == "healthy", "database": db}
