"""
FastAPI server for Ticket Bridge.

The POS front end (or the backend on its behalf) posts finished orders to
/print-order; the bridge sends them straight to the network printers and
returns the rendered documents so the caller can print them client-side
when no printer answered.
"""

import logging
import os
from contextlib import asynccontextmanager
from typing import Literal

from fastapi import Depends, FastAPI, Header, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from . import __version__
from .auth import Authenticator
from .config import BridgeConfig
from .errors import RenderingFailure
from .models import OrderDocument
from .orchestrator import build_orchestrator

logger = logging.getLogger('ticket.bridge')

# Set by the CLI when --config points at a non-default file
CONFIG_ENV = 'TICKET_BRIDGE_CONFIG'

# Global instances
config = BridgeConfig(os.environ.get(CONFIG_ENV) or None)
orchestrator = build_orchestrator(config)
authenticator = Authenticator(
    backend_url=config.backend_url,
    api_key=config.backend_api_key,
    static_tokens=config.api_tokens,
    timeout=config.network_timeout,
)


class PrintOrderRequest(BaseModel):
    order_id: str | None = None
    order_data: dict
    print_type: Literal['kitchen', 'receipt', 'both'] = 'both'


class PrintJobRequest(BaseModel):
    order_id: str | None = None
    order_data: dict
    print_kitchen: bool = True
    print_receipt: bool = True
    receipt_copies: int | None = Field(default=None, ge=1, le=10)


class PreviewRequest(BaseModel):
    order_data: dict
    order_id: str | None = None


class DirectPrintResult(BaseModel):
    success: bool
    error: str | None = None
    skipped: bool = False


class PrintOrderResponse(BaseModel):
    success: bool
    results: dict[str, DirectPrintResult]
    fallback_documents: dict[str, dict[str, str] | None] = Field(default_factory=dict)
    message: str


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown logic."""
    logger.info(f"Ticket Bridge v{__version__} starting on {config.host}:{config.port}")
    if orchestrator.bridge_mode:
        logger.info(f"Print bridge mode enabled ({config.bridge_url})")

    yield

    if orchestrator.bridge is not None:
        await orchestrator.bridge.connection.close()
    logger.info("Ticket Bridge shutting down")


app = FastAPI(
    title="Ticket Bridge",
    version=__version__,
    lifespan=lifespan,
)

# The POS runs in a browser on another origin
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


async def require_user(authorization: str | None = Header(default=None)) -> dict:
    """Any authenticated caller may print; there is no role check."""
    user = await authenticator.verify(authorization)
    if user is None:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return user


def _parse_order(order_data: dict, order_id: str | None) -> OrderDocument:
    try:
        return OrderDocument.from_dict(order_data, order_id=order_id)
    except RenderingFailure as e:
        logger.warning(f"Rejected order {order_id or '?'}: {e}")
        raise HTTPException(status_code=422, detail=str(e))


@app.get("/status")
async def health_check():
    """Health check endpoint for the POS to detect the bridge."""
    bridge = orchestrator.bridge
    return {
        "status": "ok",
        "version": __version__,
        "backend": bool(config.backend_url),
        "bridge_mode": orchestrator.bridge_mode,
        "bridge": bridge.connection.state.value if bridge is not None else None,
    }


@app.post("/print-order", response_model=PrintOrderResponse)
async def print_order(request: PrintOrderRequest, user: dict = Depends(require_user)):
    order = _parse_order(request.order_data, request.order_id)
    logger.info(
        f"Print request for order {order.order_number} ({request.print_type}) "
        f"from {user.get('email') or user.get('id')}"
    )
    return await orchestrator.print_direct(order, request.print_type)


@app.post("/print")
async def print_job(request: PrintJobRequest, user: dict = Depends(require_user)):
    """Full delivery pipeline: network printers, bridge, then the browser dialog."""
    order = _parse_order(request.order_data, request.order_id)
    logger.info(f"Print job for order {order.order_number} from {user.get('email') or user.get('id')}")
    outcome = await orchestrator.print_order(
        order,
        print_kitchen=request.print_kitchen,
        print_receipt=request.print_receipt,
        receipt_copies=request.receipt_copies,
    )
    return outcome.to_dict()


@app.post("/preview")
async def preview(request: PreviewRequest, user: dict = Depends(require_user)):
    """Rendered HTML for both tickets, nothing is sent to a printer."""
    order = _parse_order(request.order_data, request.order_id)
    return await orchestrator.preview(order)


@app.post("/settings/invalidate")
async def invalidate_settings(user: dict = Depends(require_user)):
    """Called after printers or routing rules change in the back office."""
    orchestrator.settings.invalidate()
    logger.info("Printer settings cache invalidated")
    return {"status": "ok"}
