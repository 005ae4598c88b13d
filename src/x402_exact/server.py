"""
Facilitator HTTP service

A FastAPI app exposing /verify, /settle and /supported for the exact scheme on
every network the facilitator holds a key for.
"""

import logging
from typing import Optional

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from x402_exact.config import FacilitatorSettings
from x402_exact.encoding import decode_payment
from x402_exact.errors import ERR_INVALID_PAYLOAD, MalformedPayloadError
from x402_exact.facilitator import x402Facilitator
from x402_exact.strategy import build_strategy
from x402_exact.types import (
    FacilitatorRequest,
    PaymentPayload,
    SettleResponse,
    SupportedResponse,
    VerifyResponse,
)

logger = logging.getLogger(__name__)


def _payment_of(request: FacilitatorRequest) -> PaymentPayload:
    if request.payment_payload is not None:
        return request.payment_payload
    return decode_payment(request.payment_header)


def create_app(facilitator: x402Facilitator, title: str = "x402 Exact Facilitator") -> FastAPI:
    """Build the facilitator app around an already configured facilitator."""
    app = FastAPI(
        title=title,
        description="Verifies and settles exact x402 payments on EVM, Solana and Hedera",
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/")
    def root():
        """Health check endpoint"""
        return {"status": "healthy", "networks": facilitator.networks}

    @app.get(
        "/supported",
        response_model=SupportedResponse,
        response_model_exclude_none=True,
    )
    def get_supported() -> SupportedResponse:
        return facilitator.get_supported()

    # Blocking ledger calls, so plain def handlers run in the threadpool
    @app.post("/verify", response_model=VerifyResponse, response_model_exclude_none=True)
    def verify_payment(request: FacilitatorRequest) -> VerifyResponse:
        try:
            payment = _payment_of(request)
        except MalformedPayloadError as e:
            logger.info("Rejected malformed payment header: %s", e)
            return VerifyResponse(is_valid=False, invalid_reason=ERR_INVALID_PAYLOAD, payer="")
        return facilitator.verify(payment, request.payment_requirements)

    @app.post("/settle", response_model=SettleResponse, response_model_exclude_none=True)
    def settle_payment(request: FacilitatorRequest) -> SettleResponse:
        try:
            payment = _payment_of(request)
        except MalformedPayloadError as e:
            logger.info("Rejected malformed payment header: %s", e)
            return SettleResponse(
                success=False,
                error_reason=ERR_INVALID_PAYLOAD,
                transaction="",
                network=request.payment_requirements.network,
                payer="",
            )
        return facilitator.settle(payment, request.payment_requirements)

    return app


def create_app_from_settings(settings: Optional[FacilitatorSettings] = None) -> FastAPI:
    """Build the app from environment settings, creating one signer per network."""
    settings = settings or FacilitatorSettings.from_env()
    facilitator = x402Facilitator(
        build_strategy(),
        settings.build_signers(),
        settle_timeout_seconds=settings.settle_timeout_seconds,
    )
    logger.info("Facilitator serving %s", ", ".join(facilitator.networks) or "no networks")
    return create_app(facilitator)


def main() -> None:
    logging.basicConfig(level=logging.INFO)
    settings = FacilitatorSettings.from_env()
    uvicorn.run(create_app_from_settings(settings), host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
