"""kinship-graph: relationship graph service for family trees."""

from __future__ import annotations

import logging
import os
import time
from collections import deque
from contextlib import asynccontextmanager
from threading import Lock

import psutil
import uvicorn
from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from kinship.config import get_config
from kinship.db import close_pool, get_pool, init_pool
from kinship.graph.engine import InvalidArgument
from kinship.graph.routes import router as graph_router
from kinship.graph.store import EdgeStore, StoreUnavailable, get_store

logger = logging.getLogger("kinship")

PORT = int(os.environ.get("KG_PORT", "9820"))


# ---------------------------------------------------------------------------
# RateCounter: thread-safe sliding-window request counter
# ---------------------------------------------------------------------------

SPARKLINE_BUCKETS = 60


class RateCounter:
    """Count events in a sliding window and expose per-second rate + history."""

    def __init__(self, window: float = 60.0) -> None:
        self._window = window
        self._lock = Lock()
        self._timestamps: deque[float] = deque()
        self._sparkline: deque[float] = deque(maxlen=SPARKLINE_BUCKETS)

    def record(self) -> None:
        with self._lock:
            self._timestamps.append(time.monotonic())

    def rate(self) -> float:
        cutoff = time.monotonic() - self._window
        with self._lock:
            while self._timestamps and self._timestamps[0] < cutoff:
                self._timestamps.popleft()
            count = len(self._timestamps)
        return count / self._window if self._window else 0.0

    def snapshot_sparkline(self) -> None:
        self._sparkline.append(round(self.rate(), 2))

    def sparkline_history(self) -> list[float]:
        return list(self._sparkline)


request_counter = RateCounter(window=60.0)
_start_time: float = 0.0


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI):
    global _start_time
    _start_time = time.time()

    await init_pool()
    logger.info("Database pool initialized (config: %s)", get_config().to_dict())

    yield

    await close_pool()
    logger.info("Database pool closed")


# ---------------------------------------------------------------------------
# App
# ---------------------------------------------------------------------------

app = FastAPI(
    title="kinship-graph",
    version="0.1.0",
    description="Relationship path finding, focus subgraphs and graph layout for family trees",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def count_requests(request: Request, call_next):
    request_counter.record()
    return await call_next(request)


@app.exception_handler(StoreUnavailable)
async def store_unavailable(request: Request, exc: StoreUnavailable):
    logger.exception("Store unavailable for %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(status_code=503, content={"error": "Graph store unavailable"})


@app.exception_handler(InvalidArgument)
async def invalid_argument(request: Request, exc: InvalidArgument):
    return JSONResponse(status_code=400, content={"detail": str(exc)})


app.include_router(graph_router)


# ---------------------------------------------------------------------------
# Core routes
# ---------------------------------------------------------------------------

@app.get("/health")
async def health():
    """Health check: reports DB connectivity status."""
    result: dict = {"status": "ok"}
    try:
        p = get_pool()
        db_ok = await p.fetchval("SELECT 1")
        result["database"] = "connected" if db_ok == 1 else "unexpected"
    except RuntimeError:
        result["database"] = "pool_not_initialized"
    except Exception as exc:
        result["status"] = "degraded"
        result["database"] = f"error: {exc}"
    return result


@app.get("/metrics")
async def metrics(store: EdgeStore = Depends(get_store)):
    """Stats endpoint for the server-monitor dashboard."""
    process = psutil.Process(os.getpid())
    mem = process.memory_info()
    request_counter.snapshot_sparkline()
    uptime = time.time() - _start_time if _start_time else 0.0

    result: list[dict] = [
        {"key": "uptime", "label": "Uptime", "value": round(uptime), "unit": "seconds"},
        {
            "key": "rps",
            "label": "Requests / sec",
            "value": round(request_counter.rate(), 2),
            "unit": "req/s",
            "warn_above": 200,
            "sparkline_history": request_counter.sparkline_history(),
        },
        {
            "key": "memory_rss",
            "label": "Memory (RSS)",
            "value": round(mem.rss / 1_048_576, 1),
            "unit": "MB",
            "warn_above": 512,
        },
        {
            "key": "cpu_percent",
            "label": "CPU usage",
            "value": process.cpu_percent(interval=0),
            "unit": "%",
            "warn_above": 90,
        },
    ]

    try:
        stats = await store.stats()
    except StoreUnavailable as exc:
        logger.exception("Error fetching graph metrics")
        return JSONResponse(
            status_code=500,
            content={"metrics": [], "error": f"Database error: {exc}"},
        )

    result.extend([
        {"key": "total_people", "label": "People", "value": stats.get("total_people", 0), "unit": "people"},
        {"key": "total_edges", "label": "Relationships", "value": stats.get("total_edges", 0), "unit": "edges"},
        {"key": "families", "label": "Families", "value": stats.get("families_count", 0), "unit": "families"},
        {"key": "marriages", "label": "Marriages", "value": stats.get("marriages", 0), "unit": "edges"},
    ])
    return {"metrics": result}


# ---------------------------------------------------------------------------
# Entrypoint
# ---------------------------------------------------------------------------

def run() -> None:
    logging.basicConfig(
        level=get_config().log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run("kinship.app:app", host="127.0.0.1", port=PORT, reload=False)


if __name__ == "__main__":
    run()
