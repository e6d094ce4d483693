
# app.py
import sys
from contextlib import asynccontextmanager
from typing import List, Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from apps.api.routes import router as examples_router
from config.logging import configure, get_logger
from config.settings import Settings, build_arg_parser, parse_cli_args
from config.settings import settings as default_settings
from rag.service import build_service

log = get_logger("app")


def create_app(settings: Optional[Settings] = None, embedder=None, defaults=None) -> FastAPI:
    """
    Builds the HTTP app. The service (store + index) is constructed once in the
    lifespan hook and lives on app.state for the life of the process.
    """
    settings = settings or default_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure(settings.LOG_LEVEL)
        # Only report whether the key is present
        log.info(f"Embedding model: {settings.EMBED_MODEL} (dim={settings.EMBED_DIM})")
        log.info(f"OpenAI key: {'set' if settings.OPENAI_API_KEY else 'MISSING'}")
        log.info(f"Data dir: {settings.data_path.resolve()}")
        if not settings.OPENAI_API_KEY and settings.EMBED_MODEL.startswith("text-embedding"):
            log.warning("OPENAI_API_KEY missing. Similarity search and adds will fail until it is set.")

        app.state.service = build_service(settings, embedder=embedder, defaults=defaults)
        yield
        app.state.service = None

    app = FastAPI(title="Query Assistant", version="0.1.0", lifespan=lifespan)

    # CORS middleware (restrict origins in production)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_headers=["*"],
        allow_methods=["*"],
    )

    @app.get("/health")
    def health(request: Request):
        service = getattr(request.app.state, "service", None)
        if service is None:
            return {"status": "starting"}
        return {"status": "ok", **service.health()}

    app.include_router(examples_router, tags=["Training examples"])
    return app


# `uvicorn app:app` entry point; configured from the environment
app = create_app()


def main(argv: Optional[List[str]] = None) -> None:
    parser = build_arg_parser()
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8000)
    args, _ = parse_cli_args(argv, parser)

    settings = Settings(OPENAI_API_KEY=args.openai_key, DATA_DIR=args.data_dir, LOG_LEVEL=args.log_level)
    configure(settings.LOG_LEVEL)
    uvicorn.run(create_app(settings), host=args.host, port=args.port, log_level=settings.LOG_LEVEL.lower())


if __name__ == "__main__":
    main(sys.argv[1:])
