"""
Read-only HTTP API

Exposes what the ledger says about a record: its row, who attested,
who may view it, and whether a given plaintext is the fingerprinted data.

No decrypt endpoint: private keys never cross the wire.

Error mapping:
    LedgerUnavailableError  -> 503
    RecordNotFoundError     -> 404
    FingerprintFormatError  -> 422
    IdentityFormatError     -> 422
"""

import base64
import binascii
from dataclasses import asdict
from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from .core import Record, RecordService
from .errors import (
    FingerprintFormatError,
    IdentityFormatError,
    LedgerUnavailableError,
    RecordError,
    RecordNotFoundError,
)
from .ledger import LedgerGateway, create_gateway
from .observability import RequestContextMiddleware, check_health, get_logger, get_metrics, setup_logging
from .schemas import Permission, RecordEntry

logger = get_logger(__name__)


# ============================================================
# Request / Response Models
# ============================================================

class AttestationResponse(BaseModel):
    data_hash: str
    identity: str
    attested: bool


class PermissionResponse(BaseModel):
    data_hash: str
    identity: str
    permission: Permission


class VerifyRequest(BaseModel):
    """Candidate plaintext, as text or base64."""
    data: Optional[str] = None
    data_b64: Optional[str] = None


class VerifyResponse(BaseModel):
    data_hash: str
    computed_hash: str
    verified: bool


# ============================================================
# Helper Functions
# ============================================================

def get_service(request: Request) -> RecordService:
    """Get record service from app state."""
    return request.app.state.service


def _record(request: Request, fingerprint: str) -> Record:
    # Passthrough queries do not need the ledger row
    return Record(fingerprint, get_service(request).gateway)


def _candidate_bytes(body: VerifyRequest) -> bytes:
    if (body.data is None) == (body.data_b64 is None):
        raise HTTPException(status_code=422, detail="Provide exactly one of data or data_b64")
    if body.data is not None:
        return body.data.encode("utf-8")
    try:
        return base64.b64decode(body.data_b64, validate=True)
    except (binascii.Error, ValueError):
        raise HTTPException(status_code=422, detail="data_b64 is not valid base64") from None


# ============================================================
# App Factory
# ============================================================

def create_app(
    gateway: Optional[LedgerGateway] = None,
    configure_logging: bool = True,
) -> FastAPI:
    """
    Build the API around a gateway.

    Args:
        gateway: LedgerGateway to read from. Defaults to create_gateway().
        configure_logging: Install the vaultrecord root handler. Host
            applications that own their logging setup pass False.
    """
    if configure_logging:
        setup_logging()

    app = FastAPI(
        title="vaultrecord",
        description="Read-only view of ledger-anchored records.",
        version="0.1.0",
    )
    app.state.service = RecordService(gateway or create_gateway())
    app.add_middleware(RequestContextMiddleware)

    @app.exception_handler(LedgerUnavailableError)
    async def ledger_unavailable(request: Request, exc: LedgerUnavailableError):
        return JSONResponse(status_code=503, content={"detail": str(exc)})

    @app.exception_handler(RecordNotFoundError)
    async def record_not_found(request: Request, exc: RecordNotFoundError):
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(FingerprintFormatError)
    @app.exception_handler(IdentityFormatError)
    async def bad_input(request: Request, exc: RecordError):
        return JSONResponse(status_code=422, content={"detail": str(exc)})

    @app.get("/health")
    def health(request: Request):
        status = check_health(get_service(request).gateway)
        return JSONResponse(
            status_code=200 if status.healthy else 503,
            content=asdict(status),
        )

    @app.get("/metrics")
    def metrics():
        return get_metrics().get_summary()

    @app.get("/records/{fingerprint}", response_model=RecordEntry)
    def get_record(request: Request, fingerprint: str):
        return get_service(request).get_record(fingerprint).entry

    @app.get(
        "/records/{fingerprint}/attestations/{identity}",
        response_model=AttestationResponse,
    )
    def get_attestation(request: Request, fingerprint: str, identity: str):
        record = _record(request, fingerprint)
        return AttestationResponse(
            data_hash=record.data_hash,
            identity=identity,
            attested=record.get_attestation(identity),
        )

    @app.get(
        "/records/{fingerprint}/permissions/{identity}",
        response_model=PermissionResponse,
    )
    def get_permission(request: Request, fingerprint: str, identity: str):
        record = _record(request, fingerprint)
        return PermissionResponse(
            data_hash=record.data_hash,
            identity=identity,
            permission=record.get_permission(identity),
        )

    @app.post("/records/{fingerprint}/verify", response_model=VerifyResponse)
    def verify(request: Request, fingerprint: str, body: VerifyRequest):
        record = _record(request, fingerprint)
        candidate = _candidate_bytes(body)
        return VerifyResponse(
            data_hash=record.data_hash,
            computed_hash=RecordService.hash(candidate),
            verified=record.verify_data(candidate),
        )

    return app
