"""Facilitator settings read from the environment."""

import logging
import os
from typing import Mapping, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, field_validator

from x402_exact.exact_hedera import DEFAULT_SETTLE_TIMEOUT_SECONDS
from x402_exact.facilitator_client import DEFAULT_FACILITATOR_URL
from x402_exact.networks import ALL_NETWORKS, NetworkFamily, get_network_family
from x402_exact.wallet import Signer, create_signer

logger = logging.getLogger(__name__)


class FacilitatorSettings(BaseModel):
    facilitator_url: str = DEFAULT_FACILITATOR_URL
    evm_private_key: Optional[str] = None
    evm_rpc_url: Optional[str] = None
    svm_private_key: Optional[str] = None
    svm_rpc_url: Optional[str] = None
    hedera_account_id: Optional[str] = None
    hedera_private_key: Optional[str] = None
    settle_timeout_seconds: float = DEFAULT_SETTLE_TIMEOUT_SECONDS
    networks: list[str] = list(ALL_NETWORKS)
    host: str = "0.0.0.0"
    port: int = 8000

    @field_validator("networks")
    def validate_networks(cls, v):
        for network in v:
            get_network_family(network)
        return v

    @field_validator("settle_timeout_seconds")
    def validate_timeout(cls, v):
        if v <= 0:
            raise ValueError("settle_timeout_seconds must be positive")
        return v

    @classmethod
    def from_env(
        cls, environ: Optional[Mapping[str, str]] = None, dotenv: bool = True
    ) -> "FacilitatorSettings":
        """Read settings from the process environment, after loading `.env`.

        Unset variables keep their defaults. `X402_NETWORKS` is a comma
        separated list of network names.
        """
        if dotenv:
            load_dotenv()
        env = os.environ if environ is None else environ

        values = {}
        for field, name in (
            ("facilitator_url", "X402_FACILITATOR_URL"),
            ("evm_private_key", "EVM_PRIVATE_KEY"),
            ("evm_rpc_url", "EVM_RPC_URL"),
            ("svm_private_key", "SVM_PRIVATE_KEY"),
            ("svm_rpc_url", "SVM_RPC_URL"),
            ("hedera_account_id", "HEDERA_ACCOUNT_ID"),
            ("hedera_private_key", "HEDERA_PRIVATE_KEY"),
            ("settle_timeout_seconds", "X402_SETTLE_TIMEOUT_SECONDS"),
            ("host", "HOST"),
            ("port", "PORT"),
        ):
            if env.get(name):
                values[field] = env[name]
        if env.get("X402_NETWORKS"):
            values["networks"] = [
                n.strip() for n in env["X402_NETWORKS"].split(",") if n.strip()
            ]
        return cls.model_validate(values)

    def build_signers(self) -> dict[str, Signer]:
        """Create one signer per configured network that has key material.

        Networks whose family has no key configured are skipped.

        Raises:
            ValueError: If a configured key cannot be parsed
        """
        signers: dict[str, Signer] = {}
        for network in self.networks:
            family = get_network_family(network)
            if family == NetworkFamily.EVM and self.evm_private_key:
                signers[network] = create_signer(
                    network, self.evm_private_key, rpc_url=self.evm_rpc_url
                )
            elif family == NetworkFamily.SVM and self.svm_private_key:
                signers[network] = create_signer(
                    network, self.svm_private_key, rpc_url=self.svm_rpc_url
                )
            elif (
                family == NetworkFamily.HEDERA
                and self.hedera_private_key
                and self.hedera_account_id
            ):
                signers[network] = create_signer(
                    network, self.hedera_private_key, account_id=self.hedera_account_id
                )
            else:
                logger.debug("No key configured for %s, skipping", network)
        return signers
