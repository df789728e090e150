from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .errors import PipelineError
from .routes_files import router as files_router
from .routes_pipeline import router as pipeline_router
from .routes_queue import router as queue_router
from .settings import get_settings

logger = logging.getLogger("trendscout")

app = FastAPI(title="trendscout")
settings = get_settings()

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(PipelineError)
async def pipeline_error_handler(request: Request, exc: PipelineError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse({"error": exc.message}, status_code=exc.status_code)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
        parts.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
    return JSONResponse({"error": "; ".join(parts) or "Invalid request"}, status_code=400)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url)
    return JSONResponse({"error": "Internal Server Error"}, status_code=500)


@app.get("/ping")
async def ping():
    return {"status": "ok"}


app.include_router(pipeline_router)
app.include_router(queue_router)
app.include_router(files_router)


@app.on_event("startup")
async def startup_event():
    """Start scheduler on app startup."""
    from .services.scheduler import scheduler_service
    scheduler_service.configure(settings)
    scheduler_service.start()


@app.on_event("shutdown")
async def shutdown_event():
    """Stop scheduler on app shutdown."""
    from .services.scheduler import scheduler_service
    scheduler_service.stop()
