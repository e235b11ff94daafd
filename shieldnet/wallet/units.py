# shieldnet/wallet/units.py
from __future__ import annotations

from decimal import Decimal, InvalidOperation, localcontext
from typing import Union

from shieldnet import config
from shieldnet.errors import InvalidFieldValue


def parse_units(value: Union[str, int, Decimal], decimals: int = config.TOKEN_DECIMALS) -> int:
    """'1.5' -> 1500000000000000000 for 18 decimals. Extra precision is rejected, not rounded."""
    try:
        d = Decimal(str(value).strip())
    except InvalidOperation:
        raise InvalidFieldValue(f"Not an amount: {value!r}") from None
    if not d.is_finite() or d < 0:
        raise InvalidFieldValue(f"Not an amount: {value!r}")
    with localcontext() as ctx:
        ctx.prec = 100
        scaled = d.scaleb(decimals)
        if scaled != scaled.to_integral_value():
            raise InvalidFieldValue(f"{value} has more than {decimals} decimal places")
        return int(scaled)


def format_units(amount: int, decimals: int = config.TOKEN_DECIMALS) -> str:
    """1500000000000000000 -> '1.5'; whole amounts keep no fractional part."""
    if amount < 0:
        raise InvalidFieldValue(f"negative amount: {amount}")
    whole, frac = divmod(int(amount), 10 ** decimals)
    if frac == 0:
        return str(whole)
    return f"{whole}.{str(frac).rjust(decimals, '0').rstrip('0')}"


__all__ = ["parse_units", "format_units"]
