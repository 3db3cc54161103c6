"""Exact conversion between human token amounts and base units."""

from decimal import Decimal, InvalidOperation, localcontext

from app.core.exceptions import ValidationError

# bookings.payment_amount is Numeric(38, 18): at most 20 integer digits
MAX_AMOUNT = Decimal("1e20")
# ERC-20 balances are uint256
MAX_BASE_UNITS = 2**256 - 1


def to_base_units(amount: Decimal | str | int, decimals: int) -> str:
    """Convert a human amount to the token's smallest unit.

    Uses decimal scaling only, so 0.1 USDC is always exactly 100000 and
    never 99999. Amounts finer than the token's precision are rejected
    instead of rounded.

    Args:
        amount: Human-readable amount (e.g. Decimal("300"))
        decimals: Token decimals from the chain registry

    Returns:
        str: Integer string (e.g. "300000000")
    """
    try:
        value = Decimal(str(amount))
    except InvalidOperation:
        raise ValidationError(f"Invalid amount: {amount}") from None

    if not value.is_finite() or value <= 0:
        raise ValidationError("Amount must be greater than zero")
    if value >= MAX_AMOUNT:
        raise ValidationError(f"Amount must be less than {MAX_AMOUNT:,.0f}")

    with localcontext() as ctx:
        ctx.prec = 96
        scaled = value.scaleb(decimals)
        if scaled != scaled.to_integral_value():
            raise ValidationError(
                f"Amount {value} has more than {decimals} decimal places"
            )
        base_units = int(scaled)
    if base_units > MAX_BASE_UNITS:
        raise ValidationError("Amount exceeds the token's maximum supply")
    return str(base_units)


def from_base_units(base_units: int | str, decimals: int) -> Decimal:
    """Convert base units back to a human amount."""
    with localcontext() as ctx:
        ctx.prec = 96
        return Decimal(int(base_units)).scaleb(-decimals).normalize()
