import logging
import time
import uuid

from fastapi import FastAPI, Request

from rank_tracker.api import debug_router, keywords_router, maintenance_router, playlists_router

app = FastAPI(title="Playlist Rank Tracker")

logger = logging.getLogger(__name__)


@app.middleware("http")
async def request_tracing_middleware(request: Request, call_next):
    request_id = uuid.uuid4().hex[:8]
    method = request.method
    path = request.url.path
    logger.info("REQ_START %s %s %s", request_id, method, path)
    start_time = time.perf_counter()
    try:
        response = await call_next(request)
    except Exception as err:
        logger.error("REQ_ERR %s %s %s %s", request_id, method, path, err)
        raise
    elapsed_ms = (time.perf_counter() - start_time) * 1000
    logger.info(
        "REQ_END %s %s %s %s %.2fms",
        request_id,
        method,
        path,
        response.status_code,
        elapsed_ms,
    )
    return response

app.include_router(debug_router)
app.include_router(playlists_router, prefix="/api/playlists")
app.include_router(keywords_router, prefix="/api/keywords")
app.include_router(maintenance_router, prefix="/api/maintenance")


@app.get("/health")
def health():
    return {"ok": True}
