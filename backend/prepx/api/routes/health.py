from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from prepx.database.session import get_db_session
from prepx.platform.db_readiness import REQUIRED_TABLES, check_required_tables

router = APIRouter()


@router.get("/health")
def health():
    return {"status": "ok"}


@router.get("/health/readiness")
def readiness(db=Depends(get_db_session)):
    """Readiness probe that validates the billing and entitlement tables exist."""
    result = check_required_tables(db, REQUIRED_TABLES)
    body = {
        "status": "ready" if result.ready else "not_ready",
        "checks": {
            "database": "ok",
            "tables": {
                "required": result.checked_tables,
                "missing": result.missing_tables,
            },
        },
    }
    return JSONResponse(status_code=200 if result.ready else 503, content=body)
