import logging

from fastapi import FastAPI

from ..clock import Clock
from ..config import Settings, load_settings
from ..core.tracker import ReadingTracker, open_store
from ..reader.last_page import LastPageStore
from .routes import router

logger = logging.getLogger(__name__)


def create_app(settings: Settings | None = None, clock: Clock | None = None) -> FastAPI:
    settings = settings or load_settings()
    app = FastAPI(title="ReadTrack", version="0.1.0")
    app.include_router(router)

    @app.on_event("startup")
    async def startup():
        store = await open_store(settings.storage)
        app.state.store = store
        app.state.tracker = ReadingTracker(settings.tracker, store, clock)
        app.state.last_pages = LastPageStore(settings.last_page.path, settings.last_page.debounce_ms)
        if store is None:
            logger.warning("Running without persistence, dashboard will show defaults.")
        else:
            logger.info("Reading tracker ready (%s store)", settings.storage.backend)

    @app.on_event("shutdown")
    async def shutdown():
        # Process teardown is a flush trigger.
        await app.state.tracker.shutdown()
        app.state.last_pages.flush()
        if app.state.store is not None:
            await app.state.store.close()

    return app
