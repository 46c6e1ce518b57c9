from fastapi import FastAPI, Depends, HTTPException, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from sqlalchemy import text
from mealroute.database import get_db
from mealroute.core.config import settings
from mealroute.core.errors import JourneyError, RetryHint
from mealroute.core.logging_config import logger
from mealroute.routers import journey, route

# Schema is managed by Alembic migrations

app = FastAPI(
    title="MealRoute Journey API",
    version="1.0.0",
    redirect_slashes=False  # Disable automatic redirects to prevent POST data loss
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(JourneyError)
async def journey_error_handler(request: Request, exc: JourneyError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
    else:
        logger.warning(f"{request.method} {request.url.path} rejected: {exc}")
    return JSONResponse(status_code=exc.status_code, content=jsonable_encoder(exc.to_dict()))


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    logger.warning(f"{request.method} {request.url.path} invalid request: {exc.errors()}")
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=jsonable_encoder({
            "success": False,
            "error": {
                "code": "INVALID_REQUEST",
                "message": "Request validation failed",
                "details": exc.errors(),
            },
            "retry": RetryHint.NO,
        }),
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(f"{request.method} {request.url.path} unexpected error: {type(exc).__name__}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "success": False,
            "error": {
                "code": "INTERNAL_ERROR",
                "message": "Unexpected server error",
                "details": {"type": type(exc).__name__},
            },
            "retry": RetryHint.CHECK_STATUS_FIRST,
        },
    )


# Include routers
app.include_router(journey.router, prefix="/api/journey", tags=["Journey"])
app.include_router(route.router, prefix="/api/route", tags=["Route"])


@app.get("/health")
async def health_check(db: Session = Depends(get_db)):
    try:
        db.execute(text("SELECT 1"))
        return {
            "status": "healthy",
            "database": "connected"
        }
    except Exception as e:
        logger.error(f"Health check failed: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Service unhealthy"
        )
