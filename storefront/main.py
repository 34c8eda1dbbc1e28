import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from storefront import config
from storefront.api.v1 import cart, orders, products
from storefront.application.cart.cleanup_task import CartCleanupBackgroundTask
from storefront.infrastructure.database import Database

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="[%(asctime)s: %(levelname)s/%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


def create_app(database_url: str = config.DATABASE_URL, run_cleanup_task: bool = config.CART_CLEANUP_ENABLED) -> FastAPI:

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Lifecycle manager - setup and teardown.
        Inicjalizuje połączenie z bazą danych przy starcie aplikacji.
        """
        # Startup
        db = Database(database_url, echo=config.DATABASE_ECHO)
        await db.create_tables()
        app.state.db = db
        logger.info(f"Database connected: {db.engine.url.render_as_string(hide_password=True)}")

        cleanup_task = None
        if run_cleanup_task:
            cleanup_task = CartCleanupBackgroundTask(
                db.session_factory,
                interval_seconds=config.CART_CLEANUP_INTERVAL_SECONDS,
            )
            await cleanup_task.start()

        yield

        # Shutdown
        if cleanup_task:
            await cleanup_task.stop()
        await db.close()
        logger.info("Database connection closed")

    app = FastAPI(
        title="Storefront Order Service",
        description="Orders with all-or-nothing stock reservation",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.include_router(products.router)
    app.include_router(cart.router)
    app.include_router(orders.router)

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        """Every error response has the same {success, message} shape"""
        if isinstance(exc.detail, dict):
            content = {"success": False, **exc.detail}
        else:
            content = {"success": False, "message": exc.detail}
        return JSONResponse(status_code=exc.status_code, content=content, headers=exc.headers)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """Malformed body, path or query is a 400 with the same shape"""
        problems = "; ".join(
            f"{'.'.join(str(part) for part in error['loc'][1:])}: {error['msg']}"
            for error in exc.errors()
        )
        return JSONResponse(
            status_code=400,
            content={"success": False, "message": f"Invalid request: {problems}"},
        )

    @app.get("/health")
    async def health():
        """Health check endpoint"""
        return {"status": "ok", "service": "storefront-orders"}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "storefront.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
    )
