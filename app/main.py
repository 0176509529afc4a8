# Copyright (c) Rich Connexions Ltd. All rights reserved.
# Licensed under the MIT License. See LICENSE for details.

"""FastAPI application for the DGC validator.

**HTTP Endpoints**

* ``GET /?dgc=<credential>``: Validate an ``HC1:`` health credential and
  answer in plain text: ``200`` with a ``VALID:`` message when accepted,
  ``400`` with an ``INVALID:`` (decode or signature failure) or
  ``NOT VALID:`` (policy failure) message when rejected.

* ``GET /healthz``: Service status and the size and age of the
  published trust and policy snapshots.

**Background Services**

* **Refresher**: re-downloads the signer certificates and the settings
  table every ``REFRESH_INTERVAL_SECONDS`` (see :mod:`app.dgc.refresher`).

**CORS**

All origins are allowed so browser-based scanners can call the service
directly.

Architecture
------------
The async lifespan context manager handles ordered startup and shutdown:

1. Initial refresh of both snapshots.  Failure is fatal: the service
   does not serve without a trust list and a revocation list.
2. Start the background refresher.
3. Yield (application serves requests).
4. Stop the refresher, cancelling an in-flight cycle.
5. Close the shared HTTP client.
"""

from __future__ import annotations

import json
import logging
import sys
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse

from app.config import ADD_HOLDER_DETAILS, HTTP_HOST, HTTP_PORT, LOG_LEVEL
from app.dgc.api_models import HealthResponse
from app.dgc.context import get_verifier_context
from app.dgc.http_client import close_shared_client
from app.dgc.refresher import get_refresher
from app.dgc.validate import validate_credential


# ======================================================================
# Structured JSON logging
# ======================================================================


class _JSONFormatter(logging.Formatter):
    """Structured JSON log formatter.

    Produces one JSON object per log line with fields ``timestamp``,
    ``level``, ``logger``, ``message``, ``module`` and ``funcName``, plus
    ``exception`` when the record carries one.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_entry: Dict[str, Any] = {
            "timestamp": self.formatTime(record, datefmt="%Y-%m-%dT%H:%M:%S%z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "funcName": record.funcName,
        }
        if record.exc_info and record.exc_info[1] is not None:
            log_entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_entry, default=str)


def _configure_logging() -> None:
    """Install the JSON formatter on the root logger.

    Existing handlers are removed first to prevent duplicate output when
    running under uvicorn.
    """
    root = logging.getLogger()

    for handler in root.handlers[:]:
        root.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(_JSONFormatter())

    root.addHandler(handler)
    root.setLevel(getattr(logging, LOG_LEVEL.upper(), logging.INFO))

    # Suppress noisy third-party loggers; the update feed is one request
    # per certificate.
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


# ======================================================================
# Application lifespan
# ======================================================================


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initial refresh, background refresher, and orderly shutdown."""
    logger = logging.getLogger("dgc.main")

    # --- Startup ---
    _configure_logging()
    logger.info(
        "DGC validator starting: HTTP=%s:%d, holder_details=%s, log_level=%s",
        HTTP_HOST, HTTP_PORT, ADD_HOLDER_DETAILS, LOG_LEVEL,
    )

    refresher = get_refresher()
    try:
        await refresher.refresh_initial()
    except Exception:
        logger.exception("Initial refresh failed; refusing to start")
        await close_shared_client()
        raise

    await refresher.start()

    yield

    # --- Shutdown ---
    logger.info("DGC validator shutting down")
    await refresher.stop()
    await close_shared_client()
    logger.info("DGC validator shutdown complete")


# ======================================================================
# FastAPI application
# ======================================================================

app = FastAPI(
    title="DGC Validator",
    description=(
        "Digital Green Certificate validation service. Verifies the "
        "credential signature against the authority's trusted signer "
        "certificates and applies the published vaccination, test and "
        "recovery rules."
    ),
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET"],
    allow_headers=["*"],
)

logger = logging.getLogger("dgc.main")


# ======================================================================
# Endpoints
# ======================================================================


@app.get(
    "/",
    response_class=PlainTextResponse,
    summary="Validate a DGC",
    tags=["validation"],
)
def validate_endpoint(dgc: Optional[str] = None) -> PlainTextResponse:
    """Validate the credential passed in the ``dgc`` query parameter.

    Declared synchronous so FastAPI runs the CPU-bound signature scan in
    its worker threadpool, off the event loop that drives the refresher.
    """
    if dgc is None:
        return PlainTextResponse("Invalid DGC", status_code=400)

    outcome = validate_credential(dgc, get_verifier_context())
    logger.debug("Validation outcome %d: %s", outcome.status_code, outcome.message)
    return PlainTextResponse(outcome.message, status_code=outcome.status_code)


@app.get("/healthz", response_model=HealthResponse, tags=["health"])
async def healthz() -> HealthResponse:
    """Liveness/readiness probe with snapshot statistics."""
    stats = get_verifier_context().stats()
    return HealthResponse(status="ok" if stats["ready"] else "starting", **stats)


# ======================================================================
# Application runner (for direct invocation)
# ======================================================================


def main() -> None:
    """Run the DGC validator using uvicorn.

    Development::

        python -m app.main

    Production::

        uvicorn app.main:app --host 0.0.0.0 --port 3000
    """
    import uvicorn

    _configure_logging()

    uvicorn.run(
        "app.main:app",
        host=HTTP_HOST,
        port=HTTP_PORT,
        log_level=LOG_LEVEL.lower(),
        reload=False,
    )


if __name__ == "__main__":
    main()
