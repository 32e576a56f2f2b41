from contextlib import asynccontextmanager

from fastapi import FastAPI

from backend.registry import SessionRegistry
from backend.routes import router
from scriptboard.config import Settings, load_settings
from scriptboard.llm import LLM


def create_app(settings: Settings | None = None, llm: LLM | None = None) -> FastAPI:
    resolved = settings or load_settings()
    registry = SessionRegistry(resolved, llm=llm)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        registry.close_all()

    app = FastAPI(title="Scriptboard", lifespan=lifespan)
    app.state.registry = registry
    app.include_router(router, prefix="/api")
    return app


# Default app instance for uvicorn (settings from env / .env)
app = create_app()
