import asyncio
import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.staticfiles import StaticFiles

from dal.chat_dal import ChatDAL
from routes.chat_route import router as chat_router
from routes.proxy_route import router as proxy_router
from routes.realtime_ws import router as realtime_router
from routes.session_route import router as session_router
from routes.upload_route import router as upload_router
from services.browser.launcher import launch_browser
from services.browser.page_pool import PagePool
from services.browser.session_registry import SessionRegistry
from services.chat_store import ChatStore
from services.proxy.forwarder import ProxyForwarder
from services.realtime.ws_session import ActionDispatcher
from utils.config import BridgeConfig
from utils.database_init import AsyncDatabaseInitializer

BASE_DIR = Path(__file__).resolve().parent
ASSETS_DIR = BASE_DIR / "custom-assets"

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
LOGGER = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan manager to initialize:
      - the SQLite chat database (at DATABASE_DIR/chats.db)
      - the authenticated browser, its page pool and session registry
    and attach them to `app.state`.

    A missing authentication state file aborts startup.
    """
    config: BridgeConfig = app.state.config

    db_initializer = AsyncDatabaseInitializer(config.database_dir)
    await db_initializer.ensure_database()
    app.state.db_initializer = db_initializer
    app.state.chat_store = ChatStore(ChatDAL(db_initializer))

    if not config.auth_secret:
        LOGGER.warning("AUTH_SECRET is not set; client tokens cannot be verified")

    handles = await launch_browser(config)
    pool = PagePool(
        handles.context,
        max_size=config.pool_max_size,
        max_pages=config.pool_max_pages,
        acquire_timeout=config.pool_acquire_timeout,
    )
    await pool.prewarm(config.pool_prewarm)
    registry = SessionRegistry(pool, config.upstream_url + "/home", idle_seconds=config.session_idle_seconds)

    app.state.browser = handles
    app.state.page_pool = pool
    app.state.session_registry = registry
    app.state.proxy_forwarder = ProxyForwarder(handles.context, pool, config)
    app.state.action_dispatcher = ActionDispatcher(registry, app.state.chat_store, config)

    cleanup_task = asyncio.create_task(registry.run_periodic_cleanup())
    try:
        yield
    finally:
        cleanup_task.cancel()
        await registry.close_all()
        await pool.close()
        await handles.close()


def create_app(config: Optional[BridgeConfig] = None) -> FastAPI:
    """
    Create and configure the FastAPI application instance.
    """
    app = FastAPI(lifespan=lifespan)
    app.state.config = config or BridgeConfig.from_env()

    # Branding assets referenced by the injected rebrand payload.
    if ASSETS_DIR.exists():
        app.mount("/custom-assets", StaticFiles(directory=ASSETS_DIR), name="custom-assets")

    @app.get("/health")
    async def health(request: Request):
        """
        Simple health check reporting database and browser pool state.
        """
        pool = getattr(request.app.state, "page_pool", None)
        return {
            "ok": True,
            "db_initialized": hasattr(request.app.state, "db_initializer"),
            "pool_idle": pool.size if pool is not None else 0,
            "pool_leased": pool.leased if pool is not None else 0,
        }

    # Register application routers; the proxy catch-all must stay last.
    app.include_router(chat_router)
    app.include_router(session_router)
    app.include_router(upload_router)
    app.include_router(realtime_router)
    app.include_router(proxy_router)

    return app


app = create_app()
