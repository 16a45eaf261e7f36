"""Death-watch API entrypoint."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from libs.core.log_events import configure_logging
from services.deathwatch_api.dependencies import get_container
from services.deathwatch_api.presentation.http.routes import router


@asynccontextmanager
async def lifespan(_: FastAPI) -> AsyncIterator[None]:
    container = get_container()
    configure_logging(container.settings.log_level)
    container.background.start()
    if container.settings.autostart:
        container.scheduler.start()
    try:
        yield
    finally:
        container.scheduler.stop()
        container.background.shutdown(wait=False)


app = FastAPI(title="Death Watch API", lifespan=lifespan)
app.include_router(router)
