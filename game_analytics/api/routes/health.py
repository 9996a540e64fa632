from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from game_analytics.db.session import get_session

router = APIRouter(tags=["health"])


@router.get("/")
async def root() -> dict[str, str]:
    return {"status": "ok", "service": "game_analytics"}


@router.get("/health")
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/health/ready")
def readiness() -> JSONResponse:
    try:
        with get_session() as session:
            session.execute(text("SELECT 1"))
    except (RuntimeError, SQLAlchemyError) as exc:
        return JSONResponse(
            status_code=503,
            content={
                "status": "not_ready",
                "reason": f"event_store_unavailable: {exc.__class__.__name__}",
            },
        )
    return JSONResponse(status_code=200, content={"status": "ready"})
