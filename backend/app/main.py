from __future__ import annotations
import asyncio
import logging
from contextlib import asynccontextmanager

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(name)s %(levelname)s %(message)s")
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from app.config import get_settings
from app.services.prepump_engine import PrePumpEngine
from app.services.store import Store
from app.services.token_feed import TokenFeed

settings = get_settings()

worker_tasks: list[asyncio.Task] = []


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    store = Store()
    engine = PrePumpEngine(store)
    feed = TokenFeed(store, engine=engine)
    app.state.store = store
    app.state.engine = engine
    app.state.feed = feed

    store.start_sweeper(settings.sweep_interval_seconds)

    if settings.feed_refresh_interval_seconds > 0:
        from app.workers.feed_worker import run_feed_worker

        worker_tasks.append(
            asyncio.create_task(run_feed_worker(feed, settings.feed_refresh_interval_seconds))
        )

    yield

    # Shutdown
    for task in worker_tasks:
        task.cancel()
    await asyncio.gather(*worker_tasks, return_exceptions=True)
    worker_tasks.clear()
    await store.close()


app = FastAPI(
    title="Solana Token Feed",
    description="Multi-source Solana token discovery feed with pre-pump signals",
    version="1.0.0",
    lifespan=lifespan,
)

_origins = [settings.frontend_url.rstrip("/"), "http://localhost:3000", "http://localhost:3001"]
if settings.extra_cors_origins:
    _origins.extend([o.strip().rstrip("/") for o in settings.extra_cors_origins.split(",") if o.strip()])
# Deduplicate
_origins = list(dict.fromkeys(_origins))

logger = logging.getLogger(__name__)
logger.info("CORS allowed origins: %s", _origins)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register route modules
from app.api import prepump, tokens, webhooks

app.include_router(tokens.router)
app.include_router(prepump.router)
app.include_router(webhooks.router)


@app.get("/api/health")
async def health():
    return {"status": "ok"}
