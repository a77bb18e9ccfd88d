import os
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from sqlalchemy import text

from rank_tracker.core.db import SessionLocal
from rank_tracker.core.debug_tools import require_debug_token
from rank_tracker.core.locks import playlist_locks

router = APIRouter(
    prefix="/api/debug",
    tags=["debug"],
    dependencies=[Depends(require_debug_token)],
)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@router.get("/version")
def version():
    return {
        "ok": True,
        "git_sha": os.getenv("RAILWAY_GIT_COMMIT_SHA") or os.getenv("GIT_SHA") or None,
        "ts": _now_iso(),
    }


@router.get("/db-ping")
def db_ping():
    if SessionLocal is None:
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"ok": False, "error": "Database session not configured"},
        )

    session = SessionLocal()
    try:
        session.execute(text("SELECT 1"))
    except Exception as exc:  # pragma: no cover
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"ok": False, "error": str(exc)},
        )
    finally:
        session.close()

    return {"ok": True, "ts": _now_iso()}


@router.get("/locks")
def locks():
    return {"ok": True, **playlist_locks.snapshot(), "ts": _now_iso()}
