from __future__ import annotations

import logging
import time

from fastapi import FastAPI, Request
from starlette.responses import JSONResponse

from app.core.config import settings

# Import models to populate SQLAlchemy metadata
import app.db.models  # noqa: F401

from app.modules.tally.router import router as tally_router
from app.modules.supabase.router import router as supabase_router


logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("survey_rewards")


app = FastAPI(title=settings.APP_NAME)


@app.middleware("http")
async def add_process_time_header(request: Request, call_next):
    start = time.perf_counter()
    resp = await call_next(request)
    resp.headers["X-Process-Time-ms"] = f"{(time.perf_counter() - start) * 1000:.2f}"
    return resp


@app.exception_handler(Exception)
async def unhandled_exc_handler(request: Request, exc: Exception):
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


# Routers
app.include_router(tally_router)
app.include_router(supabase_router)


@app.get("/health", response_class=JSONResponse)
def health():
    return {"status": "ok", "app": settings.APP_NAME}
