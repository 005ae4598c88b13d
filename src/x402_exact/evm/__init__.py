"""EVM support for x402 payments."""

from x402_exact.evm.signers import (
    EvmSigner,
    create_connected_web3,
    create_evm_signer,
    get_rpc_url,
)

__all__ = [
    "EvmSigner",
    "create_connected_web3",
    "create_evm_signer",
    "get_rpc_url",
]
