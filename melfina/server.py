"""
HTTP service exposing the notary.

POST /notarize with {"value": ...} returns the transaction hash as text;
GET /verify?value=... returns {"notarized": bool, "txHash": str}.
"""
import logging
import os
from typing import Optional

from fastapi import FastAPI, Query
from fastapi.responses import JSONResponse, PlainTextResponse
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel

from .notary import Notary
from .version import __version__

logger = logging.getLogger(__name__)


class NotarizeRequest(BaseModel):
    value: str


def error_response(error: Exception):
    """500 carrying the raw error: JSON-RPC error objects as JSON, anything else as text."""
    if error.args and isinstance(error.args[0], dict):
        return JSONResponse(error.args[0], status_code=500)
    return PlainTextResponse(str(error), status_code=500)


def create_app(notary: Notary, static_dir: Optional[str] = None) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        notary: Notary serving the requests
        static_dir: Directory with a prebuilt browser UI to serve at /

    Returns:
        FastAPI application
    """
    app = FastAPI(title="Melfina", version=__version__)
    app.state.notary = notary

    # Sync handlers run in the threadpool, the engine blocks on the ledger
    @app.post("/notarize", response_class=PlainTextResponse)
    def notarize(body: NotarizeRequest):
        try:
            tx_hash = notary.store(body.value)
        except Exception as e:
            logger.error(f"Notarization failed: {e}")
            return error_response(e)
        return PlainTextResponse(tx_hash)

    @app.get("/verify")
    def verify(value: str = Query(...)):
        try:
            result = notary.check(value)
        except Exception as e:
            logger.error(f"Verification failed: {e}")
            return error_response(e)
        return JSONResponse(result.model_dump(by_alias=True))

    if static_dir:
        if os.path.isdir(static_dir):
            app.mount("/", StaticFiles(directory=static_dir, html=True), name="static")
        else:
            logger.warning(f"Static directory {static_dir} does not exist, not serving a UI")

    return app
