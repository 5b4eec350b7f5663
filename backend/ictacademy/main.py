import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import settings
from .database import engine, Base
from .exceptions import AuthError, CollaboratorFailure
from .logging_config import setup_logging

# Import all models (required for SQLAlchemy to create tables)
from .models import OTPRequest, Profile, UserRole

# Import routes
from .routes import auth, admin_management

setup_logging()
logger = logging.getLogger(__name__)

# Create FastAPI app
app = FastAPI(
    title=settings.APP_NAME,
    description="Phone OTP authentication and session roles for the ICT Academy platform",
    version="1.0.0",
    docs_url="/api/docs" if settings.ENABLE_API_DOCS else None,
    redoc_url="/api/redoc" if settings.ENABLE_API_DOCS else None
)

if settings.ENABLE_API_DOCS:
    logger.info("API Documentation: ENABLED (ensure this is disabled in production!)")

# CORS Middleware
if settings.APP_ENV == "development":
    ALLOWED_ORIGINS = [
        "http://localhost:3000",
        "http://localhost:5173",
        "http://localhost:8080",
    ]
else:
    ALLOWED_ORIGINS = settings.origins_list

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "DELETE"],
    allow_headers=["*"],
    max_age=3600,
)

# Security Headers Middleware
from .middleware.security import SecurityHeadersMiddleware
app.add_middleware(SecurityHeadersMiddleware)


@app.exception_handler(AuthError)
async def auth_error_handler(request: Request, exc: AuthError):
    if isinstance(exc, CollaboratorFailure):
        logger.error(f"{request.method} {request.url.path} failed: {exc.detail or exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": exc.message, "code": exc.code}
    )


# Include routers
app.include_router(auth.router, prefix="/api")
app.include_router(admin_management.router, prefix="/api")  # Moderators and bulk SMS


@app.on_event("startup")
async def startup_event():
    """Initialize database and create tables"""
    Base.metadata.create_all(bind=engine)
    logger.info(f"{settings.APP_NAME} started ({settings.APP_ENV})")
    logger.info(f"OTP store: {settings.OTP_STORE_BACKEND}, SMS backend: {settings.SMS_BACKEND}")


@app.on_event("shutdown")
async def shutdown_event():
    logger.info(f"{settings.APP_NAME} shutting down")


@app.get("/")
async def root():
    return {
        "message": f"Welcome to {settings.APP_NAME}",
        "version": "1.0.0",
        "status": "running",
        "docs": "/api/docs" if settings.ENABLE_API_DOCS else "disabled"
    }


@app.get("/api/health")
async def health_check():
    return {
        "status": "healthy",
        "environment": settings.APP_ENV
    }
