import os
from fastapi import FastAPI
from fastapi.openapi.utils import get_openapi
import structlog

from core.config import settings
from core.db import init_db
from core.celery import celery_app
from core.errors import CheckoutError, checkout_error_handler
from core.logging import configure_logging
from routes.checkout import router as checkout_router
from routes.orders import router as orders_router
from routes.webhooks import router as webhooks_router
from services.paystack import PaystackGateway
from services.stripe_gateway import StripeGateway

configure_logging()

logger = structlog.get_logger(__name__)

app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
)


# Bearer auth is optional at checkout, required for order history
def custom_openapi():
    if app.openapi_schema:
        return app.openapi_schema
    openapi_schema = get_openapi(
        title=app.title,
        version=app.version,
        description=app.description,
        routes=app.routes,
    )
    openapi_schema.setdefault("components", {})["securitySchemes"] = {
        "BearerAuth": {
            "type": "http",
            "scheme": "bearer",
            "bearerFormat": "JWT",
        }
    }
    app.openapi_schema = openapi_schema
    return app.openapi_schema

app.openapi = custom_openapi

init_db()

# Gateway clients are built once and shared by every request
app.state.paystack_gateway = PaystackGateway(
    secret_key=settings.PAYSTACK_SECRET_KEY,
    webhook_secret=settings.PAYSTACK_WEBHOOK_SECRET,
    base_url=settings.PAYSTACK_BASE_URL,
)
app.state.stripe_gateway = StripeGateway(
    api_key=settings.STRIPE_SECRET_KEY,
    webhook_secret=settings.STRIPE_WEBHOOK_SECRET,
    cancel_url=f"{settings.BASE_URL}/checkout",
)

app.add_exception_handler(CheckoutError, checkout_error_handler)

app.include_router(checkout_router)
app.include_router(webhooks_router)
app.include_router(orders_router)


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
        logger.warning("celery_health_failed", error=str(e))
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
