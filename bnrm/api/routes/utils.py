import logging

from fastapi import APIRouter, HTTPException
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import select

from bnrm.api.deps import SessionDep

router = APIRouter(prefix="/utils", tags=["utils"])
logger = logging.getLogger(__name__)


@router.get("/health-check/")
def health_check(session: SessionDep) -> bool:
    """Liveness probe; answers 503 when the database is unreachable."""
    try:
        session.exec(select(1)).one()
    except SQLAlchemyError as e:
        logger.error("Health check failed: %s", e)
        raise HTTPException(status_code=503, detail="Database unavailable")
    return True
