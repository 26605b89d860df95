"""Main FastAPI application for authgate"""

from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import structlog
import uvicorn
from authgate.config import settings
from authgate.database.database import engine, Base
from authgate.errors import register_exception_handlers
from authgate.api.routes import applications, auth, deletions, organizations, request
from authgate.services.cache_service import CacheService
from authgate.services.identity.okta_client import OktaClient
from authgate.services.oauth.provider_factory import OAuthProviderFactory, register_default_providers
from authgate.services.user_resources_service import UserResourcesService

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler"""
    # Startup
    logger.info("authgate service starting up", env=settings.APP_ENV)
    Base.metadata.create_all(bind=engine)
    register_default_providers()
    logger.info("OAuth providers registered", providers=OAuthProviderFactory.list_providers())

    app.state.okta_client = OktaClient()
    app.state.cache = CacheService.from_url()
    app.state.user_resources = UserResourcesService()

    yield

    # Shutdown
    logger.info("authgate service shutting down")
    await app.state.user_resources.close()
    await app.state.cache.close()
    await app.state.okta_client.close()


app = FastAPI(
    title="authgate API",
    description="Authentication gateway for Okta and social OAuth providers",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

# Include routers
app.include_router(applications.router, prefix="/api/v1/application", tags=["applications"])
app.include_router(organizations.router, prefix="/api/v1/organization", tags=["organizations"])
app.include_router(deletions.router, prefix="/api/v1/deletion", tags=["deletions"])
app.include_router(request.router, prefix="/api/v1/request", tags=["request"])
app.include_router(auth.router, prefix="/auth", tags=["auth"])


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {"status": "healthy", "service": "authgate"}


def run():
    uvicorn.run("authgate.main:app", host="0.0.0.0", port=settings.PORT)
