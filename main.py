#!/usr/bin/env python3
"""
Vivier FastAPI Application Entrypoint

Mounts the vivier router and initializes the SQLite store on startup.
Reads HOST, PORT, LOG_LEVEL from environment (loaded from .env when available).
"""
import os

from dotenv import load_dotenv

# Load environment variables from .env if available
load_dotenv()

from contextlib import asynccontextmanager

from fastapi import FastAPI

from vivier import __version__
from vivier.api import vivier_router
from vivier.database import initialize_database


@asynccontextmanager
async def lifespan(app: FastAPI):
    initialize_database()
    yield


app = FastAPI(title="Vivier", version=__version__, lifespan=lifespan)
app.include_router(vivier_router)


if __name__ == "__main__":
    import uvicorn

    host = os.getenv("HOST", "0.0.0.0")

    port_str = os.getenv("PORT", "8000")
    try:
        port = int(port_str)
    except ValueError:
        port = 8000

    log_level = os.getenv("LOG_LEVEL", "info").lower()
    # Uvicorn supported levels: critical, error, warning, info, debug, trace
    if log_level not in {"critical", "error", "warning", "info", "debug", "trace"}:
        log_level = "info"

    uvicorn.run(app, host=host, port=port, log_level=log_level)
