"""FastAPI application entrypoint."""

from __future__ import annotations

from fastapi import FastAPI

from contentcollector.api.routes import router


def create_app() -> FastAPI:
    app = FastAPI(
        title="Content Collector",
        description="Collects recent articles from a task's feeds and web pages",
    )
    app.include_router(router, prefix="/api")

    @app.get("/health")
    async def health() -> dict:
        return {"status": "ok"}

    return app


app = create_app()
