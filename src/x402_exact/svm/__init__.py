"""Solana Virtual Machine (SVM) support for x402 payments."""

from x402_exact.svm.wallet import SvmSigner, create_svm_signer, generate_svm_signer
from x402_exact.svm.rpc import get_rpc_client, get_rpc_url
from x402_exact.svm.transaction import (
    create_transfer_instruction,
    create_ata_instruction_if_needed,
    parse_transfer_checked,
    sign_transaction,
    send_transaction,
    confirm_transaction,
)

__all__ = [
    "SvmSigner",
    "create_svm_signer",
    "generate_svm_signer",
    "get_rpc_client",
    "get_rpc_url",
    "create_transfer_instruction",
    "create_ata_instruction_if_needed",
    "parse_transfer_checked",
    "sign_transaction",
    "send_transaction",
    "confirm_transaction",
]
