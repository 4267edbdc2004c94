import os
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from pymongo.database import Database
from starlette.middleware.gzip import GZipMiddleware
from starlette.middleware.sessions import SessionMiddleware

from database import connect, ensure_indexes
from errors import register_exception_handlers
from logger import get_logger, set_level
from mailer import Mailer
from middleware import RateLimitMiddleware, RequestLoggingMiddleware
from payments import RazorpayGateway
from routes import account, admin, auth, cart, checkout, index, products, wishlist
from security import csrf_protect
from settings import Settings

logger = get_logger("main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    try:
        ensure_indexes(app.state.db)
        logger.info("Database indexes ensured")
    except Exception as e:
        logger.warning(f"Could not ensure indexes: {e}")
    yield


def create_app(settings: Optional[Settings] = None, db: Optional[Database] = None,
               gateway: Optional[RazorpayGateway] = None, mailer: Optional[Mailer] = None) -> FastAPI:
    settings = settings or Settings.from_env()
    set_level(settings.log_level)

    app = FastAPI(title="A1 Bedsheets Store", lifespan=lifespan, dependencies=[Depends(csrf_protect)])
    app.state.settings = settings
    app.state.db = db if db is not None else connect(settings)
    app.state.gateway = gateway or RazorpayGateway(settings)
    app.state.mailer = mailer or Mailer(settings)

    # Added innermost first: sessions sit inside rate limiting and logging.
    app.add_middleware(
        SessionMiddleware,
        secret_key=settings.session_secret,
        max_age=settings.session_max_age,
        same_site="lax",
        https_only=settings.is_production,
    )
    app.add_middleware(
        RateLimitMiddleware,
        max_requests=settings.rate_limit_max,
        window_seconds=settings.rate_limit_window_seconds,
        trusted_proxies=settings.trusted_proxies,
    )
    app.add_middleware(GZipMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.base_url],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestLoggingMiddleware)

    register_exception_handlers(app)

    os.makedirs(settings.upload_dir, exist_ok=True)
    app.mount("/uploads", StaticFiles(directory=settings.upload_dir), name="uploads")

    for module in (index, auth, products, cart, wishlist, checkout, account, admin):
        app.include_router(module.router)

    logger.info("Storefront configured (%s)", settings.environment)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
