import logging
from typing import Optional

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from pedagochat import __version__
from pedagochat.config import Settings, get_settings
from pedagochat.utils.logging import configure_logging
from .routers import sessions
from .routers.frontend import build_frontend_router

load_dotenv()


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings.log_level)

    app = FastAPI(
        title="PedagoChat Backend",
        description="JSON-file session store for the PedagoChat front-end.",
        version=__version__,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    app.include_router(sessions.router)
    # Must come last: catches every remaining GET.
    app.include_router(build_frontend_router(settings.dist_path))

    logging.info(f"PedagoChat backend ready (database: {settings.db_path})")
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    s = get_settings()
    uvicorn.run(app, host=s.host, port=s.port)
