import logging
import os

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.middleware.sessions import SessionMiddleware
from dotenv import load_dotenv

load_dotenv()

from core.config import settings
from core.db import Base, engine
from core.celery import celery_app
from core.features import require_feature
from core.rate_limit import rate_limit
import models  # noqa: F401  register mappers before create_all
from routes.auth import router as auth_router
from routes.oauth import router as oauth_router
from routes.profile import router as profile_router
from routes.addresses import router as addresses_router
from routes.products import router as products_router
from routes.brands import router as brands_router
from routes.search import router as search_router
from routes.cart import router as cart_router
from routes.orders import router as orders_router
from routes.payments import router as payments_router
from routes.reviews import router as reviews_router
from routes.promos import router as promos_router
from routes.wishlist import router as wishlist_router
from routes.notifications import router as notifications_router
from routes.subscriptions import router as subscriptions_router
from routes.tracker import router as tracker_router
from routes.cron import router as cron_router
from routes.vendor import router as vendor_router
from routes.vendor_payouts import router as vendor_payouts_router
from routes.admin_orders import router as admin_orders_router
from routes.admin_vendors import router as admin_vendors_router
from routes.admin_users import router as admin_users_router
from routes.admin_catalog import router as admin_catalog_router
from routes.admin_settings import router as admin_settings_router
from services.exceptions import ServiceError

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title=settings.APP_NAME,
    version=os.getenv("APP_VERSION", "1.0.0"),
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
)

# Google OAuth keeps its state in the session
app.add_middleware(SessionMiddleware, secret_key=settings.SESSION_SECRET)

# Add OpenAPI security schemes for Bearer token authentication on docs/redoc
from fastapi.openapi.utils import get_openapi

def custom_openapi():
    if app.openapi_schema:
        return app.openapi_schema
    openapi_schema = get_openapi(
        title=app.title,
        version=app.version,
        description=app.description,
        routes=app.routes,
    )
    openapi_schema["components"]["securitySchemes"] = {
        "BearerAuth": {
            "type": "http",
            "scheme": "bearer",
            "bearerFormat": "JWT",
        }
    }
    # Apply BearerAuth globally so docs/redoc require it
    openapi_schema["security"] = [{"BearerAuth": []}]
    app.openapi_schema = openapi_schema
    return app.openapi_schema

app.openapi = custom_openapi


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


# Ensure tables exist (for dev/test; in prod use Alembic)
Base.metadata.create_all(bind=engine)

api_limit = [Depends(rate_limit("api"))]

app.include_router(auth_router)
app.include_router(oauth_router)
app.include_router(profile_router, dependencies=api_limit)
app.include_router(addresses_router, dependencies=api_limit)
app.include_router(products_router)
app.include_router(brands_router, dependencies=api_limit)
app.include_router(search_router)
app.include_router(cart_router, dependencies=api_limit)
app.include_router(orders_router, dependencies=api_limit)
app.include_router(payments_router)
app.include_router(reviews_router, dependencies=[*api_limit, Depends(require_feature("reviews"))])
app.include_router(promos_router, dependencies=api_limit)
app.include_router(wishlist_router, dependencies=[*api_limit, Depends(require_feature("wishlist"))])
app.include_router(notifications_router, dependencies=api_limit)
app.include_router(subscriptions_router, dependencies=[*api_limit, Depends(require_feature("subscriptions"))])
app.include_router(tracker_router, dependencies=[*api_limit, Depends(require_feature("tracker"))])
app.include_router(cron_router)
app.include_router(vendor_router, dependencies=api_limit)
app.include_router(vendor_payouts_router, dependencies=api_limit)
app.include_router(admin_orders_router)
app.include_router(admin_vendors_router)
app.include_router(admin_users_router)
app.include_router(admin_catalog_router)
app.include_router(admin_settings_router)


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "service": settings.APP_NAME,
    }


@app.get("/celery-health")
async def celery_health_check():
    """Check Celery worker status"""
    try:
        inspect = celery_app.control.inspect()
        stats = inspect.stats()
        if stats:
            return {"status": "healthy", "workers": len(stats)}
        else:
            return {"status": "no_workers", "message": "No Celery workers running"}
    except Exception as e:
        logger.warning("Celery health check failed: %s", e)
        return {"status": "unhealthy", "error": str(e)}


if __name__ == "__main__":
    import uvicorn

    port = int(os.getenv("PORT", 8000))

    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=port,
        reload=settings.DEBUG,
    )
