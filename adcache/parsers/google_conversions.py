"""adcache — Google Ads Conversions Parser.

Classifies Google Ads conversion actions by name (Polish and English
vocabulary) into funnel buckets. Rules are evaluated in order and the first
match wins, so every conversion lands in at most one bucket. Booking steps
come first; the reservation rule additionally refuses anything that looks
like a booking step ("Booking engine step 3 - complete" is step 3, never a
reservation).
"""

from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple

from adcache.models.schemas import FunnelMetrics
from adcache.parsers.funnel import (
    FunnelBucket,
    build_funnel,
    check_funnel_inversions,
    parse_value,
)
from adcache.core.logging import get_logger

logger = get_logger("parsers.google")

BOOKING_STEP_MARKERS = ("krok", "step", "booking engine", "booking_step")


@dataclass(frozen=True)
class ConversionRule:
    """Case-insensitive substring patterns for one funnel bucket."""

    bucket: FunnelBucket
    include: Tuple[str, ...]
    exclude: Tuple[str, ...] = ()

    def matches(self, name: str) -> bool:
        name = name.lower()
        if not any(pattern in name for pattern in self.include):
            return False
        return not any(pattern in name for pattern in self.exclude)


GOOGLE_CONVERSION_RULES: Tuple[ConversionRule, ...] = (
    ConversionRule(
        FunnelBucket.STEP_1,
        ("step 1", "step1", "krok 1", "1 krok", "pierwszy krok", "booking_step_1"),
    ),
    ConversionRule(
        FunnelBucket.STEP_2,
        ("step 2", "step2", "krok 2", "2 krok", "drugi krok", "booking_step_2"),
    ),
    ConversionRule(
        FunnelBucket.STEP_3,
        ("step 3", "step3", "krok 3", "3 krok", "trzeci krok", "booking_step_3"),
    ),
    ConversionRule(
        FunnelBucket.RESERVATION,
        ("rezerwacja", "reservation", "zakup", "purchase", "complete"),
        exclude=BOOKING_STEP_MARKERS,
    ),
    ConversionRule(FunnelBucket.CLICK_TO_CALL, ("phone", "telefon", "call", "dzwonienie")),
    ConversionRule(
        FunnelBucket.EMAIL,
        ("email", "e-mail", "mail", "contact", "kontakt", "formularz"),
    ),
)


def classify_conversion(name: str) -> Optional[FunnelBucket]:
    """First matching bucket for a conversion name, or None."""
    for rule in GOOGLE_CONVERSION_RULES:
        if rule.matches(name):
            return rule.bucket
    return None


def _first_present(conversion: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        if conversion.get(key) is not None:
            return conversion[key]
    return None


def parse_google_conversions(
    conversions: Optional[Sequence[Mapping[str, Any]]],
    campaign_label: Optional[str] = None,
) -> FunnelMetrics:
    """Classify Google Ads conversion actions into funnel buckets."""
    label = campaign_label or "google campaign"
    counts: Dict[FunnelBucket, float] = {}
    reservation_value = 0.0

    for conversion in conversions or []:
        name = str(_first_present(conversion, "conversion_name", "name") or "")
        bucket = classify_conversion(name)
        if bucket is None:
            logger.debug(f"Unclassified Google conversion {name!r} ({label})")
            continue

        count = parse_value(_first_present(conversion, "conversions", "value"), f"{label}:{name}")
        if count is not None:
            counts[bucket] = counts.get(bucket, 0.0) + count

        if bucket is FunnelBucket.RESERVATION:
            value = parse_value(
                _first_present(conversion, "conversion_value", "all_conversions_value"),
                f"{label}:{name}:value",
            )
            reservation_value += value or 0.0

    metrics = build_funnel(counts, reservation_value)
    check_funnel_inversions(metrics, label, "google")
    return metrics
