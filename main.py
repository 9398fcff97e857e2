import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from core.database import init_db
from core.errors import register_exception_handlers
from core.settings import get_settings
from modules.alerts.router import bom_alerts_router, router as stock_alerts_router
from modules.analytics.router import router as analytics_router
from modules.bom.router import router as bom_router
from modules.materials.router import router as materials_router
from modules.products.router import router as products_router
from modules.recipes.router import product_recipes_router, router as recipes_router
from modules.reports.router import router as reports_router
from modules.tenants.router import router as tenants_router

settings = get_settings()

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    app = FastAPI(title=settings.app_name)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)

    app.include_router(tenants_router, prefix=settings.api_prefix)

    tenant_prefix = settings.api_prefix + "/tenants/{tenant_id}"
    for router in (
        products_router,
        product_recipes_router,
        materials_router,
        recipes_router,
        bom_router,
        analytics_router,
        bom_alerts_router,
        stock_alerts_router,
        reports_router,
    ):
        app.include_router(router, prefix=tenant_prefix)

    @app.get("/health")
    def health():
        return {"status": "ok"}

    return app


app = create_app()


@app.on_event("startup")
def on_startup():
    init_db()
    logger.info("%s started", settings.app_name)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())
