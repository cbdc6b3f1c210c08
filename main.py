from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from starlette.responses import JSONResponse
import asyncio
import logging
import time
import uvicorn

from app.core.config import settings, get_cors_origins
from app.api import auth
from app.db.base import Base, engine
from app.services.auth import build_otp_manager
from app.utils.errors import AuthError

# Import all models to ensure SQLAlchemy can create the tables
from app.models.user import User
from app.models.otp import OTP

logger = logging.getLogger(__name__)

app = FastAPI(
    title=settings.PROJECT_NAME,
    openapi_url=f"{settings.API_V1_STR}/openapi.json",
)


async def purge_expired_otps_periodically(interval_seconds: float):
    manager = build_otp_manager()
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            manager.purge_expired()
        except AuthError as e:
            logger.error(f"Expired OTP cleanup failed: {e.message}")


@app.on_event("startup")
async def startup_event():
    # Create tables
    Base.metadata.create_all(bind=engine)
    app.state.otp_cleanup = asyncio.create_task(
        purge_expired_otps_periodically(settings.OTP_CLEANUP_INTERVAL_MINUTES * 60)
    )


@app.on_event("shutdown")
async def shutdown_event():
    task = getattr(app.state, "otp_cleanup", None)
    if task is not None:
        task.cancel()

# Set up CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=get_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

@app.middleware("http")
async def add_process_time_header(request: Request, call_next):
    start_time = time.time()
    response = await call_next(request)
    process_time = time.time() - start_time
    response.headers["X-Process-Time"] = str(process_time)
    return response

@app.exception_handler(AuthError)
async def auth_error_handler(request: Request, exc: AuthError):
    return JSONResponse(status_code=exc.status, content=exc.to_dict())

@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled error on {request.url.path}: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"},
    )

@app.get("/")
def read_root():
    return {"message": "We're up! 🍾"}

app.include_router(auth.router, prefix=settings.API_V1_STR)

if __name__ == "__main__":
    uvicorn.run("main:app", host="0.0.0.0", port=8000)
