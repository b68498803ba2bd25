import logging

from fastapi import APIRouter, FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from availability.router import router as availability_router
from bookings.router import router as bookings_router
from config import settings
from db import Base, engine
from exceptions import DomainException, ValidationException
from mentors.router import router as mentors_router
from reviews.router import router as reviews_router
from users.auth import auth_backend
from users.dependencies import fastapi_users
from users.schemas import UserCreate, UserRead, UserUpdate

# Registers every mapped table on Base.metadata
import availability.models  # noqa: F401
import reviews.models  # noqa: F401

logging.basicConfig(
    level=settings.log_level, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

app = FastAPI(title="mentorbook")


@app.exception_handler(DomainException)
async def domain_exception_handler(request: Request, exc: DomainException):
    http_exc = exc.to_http_exception()
    if http_exc.status_code >= 500:
        logger.error("unhandled domain error %s: %s", exc.code, exc.message)
    return JSONResponse(status_code=http_exc.status_code, content={"detail": http_exc.detail})


@app.exception_handler(RequestValidationError)
async def request_validation_exception_handler(request: Request, exc: RequestValidationError):
    # Malformed requests get the same 400 body as ValidationException
    http_exc = ValidationException(
        "Request validation failed",
        code="VALIDATION_ERROR",
        details={"errors": jsonable_encoder(exc.errors())},
    ).to_http_exception()
    return JSONResponse(status_code=http_exc.status_code, content={"detail": http_exc.detail})


# Main API Router
api_router = APIRouter(prefix="/api/v1")

# Auth Routes
api_router.include_router(
    fastapi_users.get_auth_router(auth_backend),
    prefix="/auth/jwt",
    tags=["auth"],
)

api_router.include_router(
    fastapi_users.get_register_router(UserRead, UserCreate),
    prefix="/auth",
    tags=["auth"],
)

api_router.include_router(
    fastapi_users.get_users_router(UserRead, UserUpdate),
    prefix="/users",
    tags=["users"],
)

# Mentor Routes
api_router.include_router(mentors_router, prefix="/mentors", tags=["mentors"])

# Booking Routes
api_router.include_router(bookings_router, prefix="/sessions", tags=["sessions"])

# Dated Availability Routes
api_router.include_router(availability_router, prefix="/availability", tags=["availability"])

# Review Routes
api_router.include_router(reviews_router, prefix="/reviews", tags=["reviews"])

# Mount the API router to the main app
app.include_router(api_router)


@app.on_event("startup")
async def on_startup():
    # Not needed if you setup a migration system like Alembic
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


@app.get("/")
def main():
    return {"message": "Hello from mentorbook!"}
