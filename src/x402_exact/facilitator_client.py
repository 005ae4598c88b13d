"""HTTP client used by resource servers to reach a remote facilitator."""

import logging
from dataclasses import dataclass
from typing import Any, Optional

import httpx

from x402_exact.types import (
    PaymentPayload,
    PaymentRequirements,
    SettleResponse,
    SupportedResponse,
    VerifyResponse,
)

logger = logging.getLogger(__name__)

DEFAULT_FACILITATOR_URL = "https://x402.org/facilitator"


@dataclass
class FacilitatorConfig:
    """Configuration for the HTTP facilitator client."""

    url: str = DEFAULT_FACILITATOR_URL
    timeout: float = 30.0
    http_client: Optional[httpx.Client] = None


class FacilitatorClient:
    """Talks to a facilitator's /verify, /settle and /supported endpoints."""

    def __init__(self, config: Optional[FacilitatorConfig] = None) -> None:
        config = config or FacilitatorConfig()
        self._url = config.url.rstrip("/")
        self._timeout = config.timeout
        self._http_client = config.http_client
        self._owns_client = config.http_client is None

    def _get_client(self) -> httpx.Client:
        if self._http_client is None:
            self._http_client = httpx.Client(timeout=self._timeout, follow_redirects=True)
        return self._http_client

    def close(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._owns_client and self._http_client:
            self._http_client.close()
            self._http_client = None

    def __enter__(self) -> "FacilitatorClient":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    @property
    def url(self) -> str:
        return self._url

    def verify(
        self, payload: PaymentPayload, requirements: PaymentRequirements
    ) -> VerifyResponse:
        """Ask the facilitator whether a payment is valid.

        Raises:
            httpx.HTTPError: If the request fails
            ValueError: If the facilitator answers with a non-200 status
        """
        data = self._post("verify", payload, requirements)
        return VerifyResponse.model_validate(data)

    def settle(
        self, payload: PaymentPayload, requirements: PaymentRequirements
    ) -> SettleResponse:
        """Ask the facilitator to settle a payment.

        Raises:
            httpx.HTTPError: If the request fails
            ValueError: If the facilitator answers with a non-200 status
        """
        data = self._post("settle", payload, requirements)
        return SettleResponse.model_validate(data)

    def get_supported(self) -> SupportedResponse:
        """List the scheme/network kinds the facilitator settles."""
        response = self._get_client().get(f"{self._url}/supported")
        if response.status_code != 200:
            raise ValueError(
                f"Facilitator get_supported failed ({response.status_code}): {response.text}"
            )
        return SupportedResponse.model_validate(response.json())

    def _post(
        self, endpoint: str, payload: PaymentPayload, requirements: PaymentRequirements
    ) -> Any:
        request_body = {
            "x402Version": payload.x402_version,
            "paymentPayload": payload.model_dump(by_alias=True, exclude_none=True),
            "paymentRequirements": requirements.model_dump(by_alias=True, exclude_none=True),
        }
        response = self._get_client().post(
            f"{self._url}/{endpoint}",
            headers={"Content-Type": "application/json"},
            json=request_body,
        )
        if response.status_code != 200:
            logger.warning(
                "Facilitator %s returned %s: %s", endpoint, response.status_code, response.text
            )
            raise ValueError(
                f"Facilitator {endpoint} failed ({response.status_code}): {response.text}"
            )
        return response.json()
