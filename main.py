from fastapi import FastAPI
from contextlib import asynccontextmanager
from app.core.config import settings
from app.core.logging import get_logger
from app.apis.auth.main import router as auth_router
from app.apis.user_profile.main import router as user_profile_router
from app.apis.decks.main import router as decks_router
from app.modules.decks.client import build_generation_client

import uvicorn
from fastapi.middleware.cors import CORSMiddleware


logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Tests may install their own client before startup
    if getattr(app.state, "generation_client", None) is None:
        try:
            app.state.generation_client = build_generation_client()
        except RuntimeError as e:
            logger.warning("Deck generation disabled: %s", e)
            app.state.generation_client = None
    try:
        yield
    finally:
        app.state.generation_client = None


def create_app() -> FastAPI:
    app = FastAPI(
        title=settings.app.name, version=settings.app.version, lifespan=lifespan
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.app.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(auth_router)
    app.include_router(user_profile_router)
    app.include_router(decks_router)

    @app.get("/")
    async def root():
        return {
            "status": "ok",
            "app": settings.app.name,
            "version": settings.app.version,
        }

    return app


app = create_app()


if __name__ == "__main__":
    try:
        uvicorn.run(
            "main:app",
            host="0.0.0.0",
            port=settings.app.port,
            reload=not settings.app.is_production,
        )
    except Exception as e:
        print(f"An error occurred when starting the server: {e}.")
