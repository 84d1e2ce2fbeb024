"""
Energy unit and currency conversion tables.

Pure functions over two fixed tables: energy units (relative to kWh) and
currency exchange rates (per 1 USD). No I/O, no state. Unknown codes raise
``UnknownUnitError`` so callers validate user-chosen units before use.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

# Amount of each unit equal to 1 kWh.
ENERGY_UNITS: dict[str, float] = {
    "kWh": 1.0,
    "Wh": 1_000.0,
    "MWh": 0.001,
    "J": 3_600_000.0,
    "kJ": 3_600.0,
    "MJ": 3.6,
    "BTU": 3_412.141_633,
    "kcal": 859.845_227,
}

# Amount of each currency equal to 1 USD.
CURRENCY_RATES: dict[str, float] = {
    "USD": 1.0,
    "EUR": 0.92,
    "GBP": 0.79,
    "EGP": 48.5,
    "SAR": 3.75,
    "AED": 3.6725,
    "INR": 83.2,
}

CURRENCY_SYMBOLS: dict[str, str] = {
    "USD": "$",
    "EUR": "€",
    "GBP": "£",
    "EGP": "E£",
    "SAR": "﷼",
    "AED": "د.إ",
    "INR": "₹",
}


class UnknownUnitError(ValueError):
    """Raised for a unit or currency code missing from the tables."""


def _convert(value: float, from_code: str, to_code: str, table: dict[str, float]) -> float:
    if from_code not in table:
        raise UnknownUnitError(f"Unknown unit: {from_code!r}")
    if to_code not in table:
        raise UnknownUnitError(f"Unknown unit: {to_code!r}")
    if from_code == to_code:
        return value
    return value / table[from_code] * table[to_code]


def convert_energy(value: float, from_unit: str, to_unit: str) -> float:
    """Convert an energy amount between two units of ``ENERGY_UNITS``.

    Args:
        value: Amount expressed in *from_unit*.
        from_unit: Source unit code (e.g. ``"kWh"``).
        to_unit: Target unit code (e.g. ``"J"``).

    Returns:
        The amount expressed in *to_unit*. Identical codes return *value*
        unchanged.

    Raises:
        UnknownUnitError: If either code is not a known energy unit.
    """
    return _convert(value, from_unit, to_unit, ENERGY_UNITS)


def convert_currency(value: float, from_code: str, to_code: str) -> float:
    """Convert a monetary amount between two codes of ``CURRENCY_RATES``.

    Raises:
        UnknownUnitError: If either code is not a known currency.
    """
    return _convert(value, from_code, to_code, CURRENCY_RATES)


def convert(value: float, from_unit: str, to_unit: str) -> float:
    """Convert *value* between two energy units or two currencies.

    The table is chosen from *from_unit*. Mixing an energy unit with a
    currency code is rejected.

    Raises:
        UnknownUnitError: If a code is unknown or the codes belong to
            different tables.
    """
    if from_unit in ENERGY_UNITS:
        if to_unit not in ENERGY_UNITS:
            raise UnknownUnitError(
                f"Cannot convert energy unit {from_unit!r} to {to_unit!r}"
            )
        return convert_energy(value, from_unit, to_unit)
    if from_unit in CURRENCY_RATES:
        if to_unit not in CURRENCY_RATES:
            raise UnknownUnitError(
                f"Cannot convert currency {from_unit!r} to {to_unit!r}"
            )
        return convert_currency(value, from_unit, to_unit)
    raise UnknownUnitError(f"Unknown unit: {from_unit!r}")
