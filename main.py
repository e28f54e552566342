"""
Main entrypoint for the FastAPI server
"""

import time

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.routing import APIRoute
from core.lifespan import lifespan
from core.config import get_settings
from core.logger import logger

from api.auth.routes import router as auth_router
from api.files.routes import router as files_router
from api.mirror.routes import router as mirror_router


# Customize route id's
# Helpful for creating sensible names in the client
def custom_generate_unique_id(route: APIRoute):
    """ Generate unique route IDs based on route name """
    return f"{route.name}"  # these must be unique


# Create schema & router
app = FastAPI(
    lifespan=lifespan,
    generate_unique_id_function=custom_generate_unique_id
)

# CORS settings to allow client-server communication
# Set with env variable
if get_settings().client_origin:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[get_settings().client_origin],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


@app.middleware("http")
async def log_api_requests(request: Request, call_next):
    """Log one line per /api request with status and duration"""
    start = time.perf_counter()
    response = await call_next(request)
    if request.url.path.startswith("/api"):
        duration_ms = (time.perf_counter() - start) * 1000
        logger.info(
            "%s %s %s in %dms",
            request.method,
            request.url.path,
            response.status_code,
            duration_ms,
        )
    return response


# REST routers
# Add each api/feature folder here
API_PREFIX = "/api"

app.include_router(auth_router, prefix=API_PREFIX)
app.include_router(files_router, prefix=API_PREFIX)
app.include_router(mirror_router, prefix=API_PREFIX)


# Health check endpoint for monitoring
@app.get("/api/health", tags=["health"])
def health_check():
    return {"status": "ok", "message": "File Locker API is running"}


if __name__ == "__main__":
    # For debugging purposes
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=9000, reload=True)
