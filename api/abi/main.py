from contextlib import asynccontextmanager

import redis.asyncio as aioredis
from fastapi import FastAPI

from abi.config import settings
from abi.logging_config import configure_logging
from abi.metrics import metrics_endpoint
from abi.middleware.error_handler import setup_error_handlers
from abi.middleware.logging_middleware import RequestLoggingMiddleware
from abi.routers import (
    answers,
    auth,
    guardrails,
    leaderboard,
    questions,
    requests,
    tags,
    users,
    votes,
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Structured logging before anything else
    configure_logging()

    app.state.redis = aioredis.from_url(
        settings.redis_url, encoding="utf-8", decode_responses=True
    )
    try:
        yield
    finally:
        await app.state.redis.aclose()


app = FastAPI(title="Abi Community API", version="0.1.0", lifespan=lifespan)

app.add_middleware(RequestLoggingMiddleware)
setup_error_handlers(app)

app.include_router(auth.router)

# Community Q&A
app.include_router(questions.router)
app.include_router(answers.router)
app.include_router(votes.router)
app.include_router(tags.router)
app.include_router(users.router)
app.include_router(leaderboard.router)
app.include_router(guardrails.router)

# Upgrade request approvals
app.include_router(requests.router)

# Prometheus metrics endpoint
app.get("/metrics")(metrics_endpoint)


@app.get("/health")
async def health_check():
    return {"status": "ok"}
