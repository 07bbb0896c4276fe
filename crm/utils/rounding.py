"""
Единое правило округления для денег и процентов.

Округление "половина вверх" (1.5 -> 2, 2.5 -> 3) - так округлял веб-клиент
(Math.round) для неотрицательных сумм. Считаем в Decimal, чтобы артефакты
float (850.0000000001) не решали судьбу .5.
"""

from decimal import Decimal, ROUND_HALF_UP


def to_decimal(value) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def round_half_up(value) -> int:
    """Округлить до целого, половина - вверх."""
    return int(to_decimal(value).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def percent(part, total) -> int:
    """Целый процент part/total; 0 при нулевом знаменателе."""
    if not total:
        return 0
    return round_half_up(to_decimal(part) * 100 / to_decimal(total))
