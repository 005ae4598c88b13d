import re
from decimal import Decimal, InvalidOperation
from typing import Optional, Union

from x402_exact.chains import get_chain_id, get_default_token_address, get_token_decimals
from x402_exact.errors import InvalidAmountError
from x402_exact.types import PaymentPayload, PaymentRequirements

x402_VERSION = 1

SCHEME_EXACT = "exact"

Money = Union[str, int, float, Decimal]

_INTEGER = re.compile(r"^[0-9]+$")


def parse_atomic_amount(amount: str) -> int:
    """Parse an amount given in the asset's smallest unit.

    Raises:
        InvalidAmountError: If the amount is not a non-negative base-10 integer
    """
    if not isinstance(amount, str) or not _INTEGER.match(amount):
        raise InvalidAmountError(
            f"Amount must be a non-negative integer in atomic units, got {amount!r}"
        )
    return int(amount)


def parse_money(money: Money) -> Decimal:
    """Parse "$1.50", "1.50 USDC", 1.5 and friends into a Decimal."""
    if isinstance(money, Decimal):
        return money
    if isinstance(money, (int, float)):
        return Decimal(str(money))
    clean = money.strip().lstrip("$")
    clean = re.sub(r"\s*(USD|USDC|usd|usdc)\s*$", "", clean).strip()
    try:
        return Decimal(clean)
    except InvalidOperation:
        raise InvalidAmountError(f"Invalid price: {money!r}") from None


def process_price_to_atomic_amount(
    price: Money, network: str, asset: Optional[str] = None
) -> tuple[str, str]:
    """Convert a dollar price into (max_amount_required, asset) for a network.

    Uses the network's known USDC token unless an asset address is given.

    Raises:
        InvalidAmountError: If the price is negative or has more precision
            than the token supports
    """
    chain_id = get_chain_id(network)
    asset = asset or get_default_token_address(chain_id)
    decimals = get_token_decimals(chain_id, asset)
    value = parse_money(price)
    if value < 0:
        raise InvalidAmountError(f"Price must not be negative: {price!r}")
    atomic = value.scaleb(decimals)
    if atomic != atomic.to_integral_value():
        raise InvalidAmountError(
            f"Price {price!r} has more than {decimals} decimal places"
        )
    return str(int(atomic)), asset


def find_matching_payment_requirements(
    accepts: list[PaymentRequirements], payment: PaymentPayload
) -> Optional[PaymentRequirements]:
    """Pick the offered requirements a client payment claims to satisfy."""
    for requirements in accepts:
        if (
            requirements.scheme == payment.scheme
            and requirements.network == payment.network
        ):
            return requirements
    return None
