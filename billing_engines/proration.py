"""
Proration Engine - scale a billed amount by the share of a period used.

Pure functions with deterministic behavior. No I/O, no wall clock: every
date is supplied by the caller.

Day counts are inclusive of both endpoints, so a usage window from the 1st
to the 15th of a 31-day month is 15 days of 31.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal, localcontext

from billing_kernel.domain.invoice import ProrationDetails
from billing_kernel.domain.values import round_half_up
from billing_kernel.logging_config import get_logger

logger = get_logger("engines.proration")


def _as_date(value: date | datetime) -> date:
    if isinstance(value, datetime):
        return value.date()
    return value


def _inclusive_days(start: date, end: date) -> int:
    return abs((end - start).days) + 1


def calculate_proration(
    usage_start: date | datetime,
    usage_end: date | datetime,
    period_start: date | datetime,
    period_end: date | datetime,
) -> ProrationDetails:
    """
    Intersect a usage window with a billing period.

    Args:
        usage_start: First day of use.
        usage_end: Last day of use.
        period_start: First day of the billing period.
        period_end: Last day of the billing period.

    Returns:
        ProrationDetails with the inclusive period length, the inclusive
        length of the usage/period overlap (0 when they do not overlap) and
        the unrounded factor between them.
    """
    usage_start, usage_end = _as_date(usage_start), _as_date(usage_end)
    period_start, period_end = _as_date(period_start), _as_date(period_end)

    total_days = _inclusive_days(period_start, period_end)

    effective_start = max(usage_start, period_start)
    effective_end = min(usage_end, period_end)

    days_of_use = 0
    if effective_end >= effective_start:
        days_of_use = _inclusive_days(effective_start, effective_end)

    # A reversed period still counts its span; clamp so the overlap can
    # never exceed it.
    days_of_use = min(days_of_use, total_days)

    details = ProrationDetails(
        start_date=usage_start,
        end_date=usage_end,
        total_days_in_period=total_days,
        days_of_use=days_of_use,
    )
    logger.debug("proration_calculated", extra={
        "total_days_in_period": total_days,
        "days_of_use": days_of_use,
        "factor": details.factor,
    })
    return details


def prorate_amount(amount: int, proration: ProrationDetails) -> int:
    """
    Scale ``amount`` by ``proration``, rounding half-up exactly once.

    Uses the day counts rather than the float ``factor`` so the result does
    not depend on binary floating point.
    """
    with localcontext() as ctx:
        ctx.prec = 60
        scaled = (
            Decimal(amount)
            * Decimal(proration.days_of_use)
            / Decimal(proration.total_days_in_period)
        )
        return round_half_up(scaled)
