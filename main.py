import os
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from config import Settings, load_settings
from deps import Services, build_services
from endpoints import router
from errors import install_error_handlers
from logger import get_logger

logger = get_logger("main")


def create_app(settings: Optional[Settings] = None, services: Optional[Services] = None) -> FastAPI:
    """Build the API. Pass ``services`` to run against injected handles (tests)."""
    settings = settings or (services.settings if services else load_settings())

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = getattr(app.state, "services", None) is None
        if owned:
            app.state.services = build_services(settings)
            logger.info("Services initialised for database %s", settings.database_name)
        yield
        if owned:
            app.state.services.close()
            app.state.services = None

    app = FastAPI(title="Multi Vendor Shop API", lifespan=lifespan)
    app.state.services = services

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    install_error_handlers(app)
    app.include_router(router)

    @app.get("/")
    def root():
        return {"name": "Multi Vendor Shop API", "status": "ok"}

    @app.get("/test")
    def test_database(request: Request):
        resp = {"backend": "running", "database": "not configured"}
        services = request.app.state.services
        try:
            if services is not None and services.db is not None:
                resp["database"] = "connected"
                resp["database_name"] = services.db.name
                resp["collections"] = services.db.list_collection_names()[:10]
        except Exception as e:
            logger.warning("Database check failed: %s", e)
            resp["database"] = "error"
            resp["error"] = str(e)[:80]
        return resp

    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
