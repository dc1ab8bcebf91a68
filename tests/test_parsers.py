"""
Guards against: one conversion counted in two funnel buckets, pixel and omni
duplicates of the same purchase being summed, fractional counts leaking out,
and booking-step conversions being classified as reservations.
"""

from adcache.core.metric_registry import FUNNEL_FIELDS
from adcache.models.schemas import FunnelMetrics
from adcache.parsers.funnel import (
    FunnelBucket,
    aggregate_conversion_metrics,
    check_funnel_inversions,
    parse_value,
    sanitize_number,
)
from adcache.parsers.google_conversions import (
    GOOGLE_CONVERSION_RULES,
    classify_conversion,
    parse_google_conversions,
)
from adcache.parsers.meta_actions import (
    META_ACTION_RULES,
    custom_event_rule,
    parse_meta_actions,
)


# ---------------------------------------------------------------------------
# Meta actions
# ---------------------------------------------------------------------------


def test_pixel_purchase_and_checkout_land_in_separate_buckets():
    metrics = parse_meta_actions(
        [
            {"action_type": "offsite_conversion.fb_pixel_purchase", "value": "3"},
            {"action_type": "initiate_checkout", "value": "3"},
        ]
    )
    assert metrics.reservations == 3
    assert metrics.booking_step_3 == 3
    assert metrics.booking_step_1 == 0
    assert metrics.click_to_call == 0


def test_omni_purchase_preempts_pixel_purchase():
    metrics = parse_meta_actions(
        [
            {"action_type": "omni_purchase", "value": "4"},
            {"action_type": "offsite_conversion.fb_pixel_purchase", "value": "4"},
            {"action_type": "purchase", "value": "4"},
        ],
        [
            {"action_type": "omni_purchase", "value": "1200.50"},
            {"action_type": "offsite_conversion.fb_pixel_purchase", "value": "1200.50"},
        ],
    )
    assert metrics.reservations == 4
    assert metrics.reservation_value == 1200.50


def test_lead_types_are_summed_into_email_contacts():
    metrics = parse_meta_actions(
        [
            {"action_type": "lead", "value": "2"},
            {"action_type": "onsite_conversion.lead_grouped", "value": "1"},
            {"action_type": "click_to_call_call_confirm", "value": "5"},
        ]
    )
    assert metrics.email_contacts == 3
    assert metrics.click_to_call == 5


def test_action_types_match_regardless_of_case():
    metrics = parse_meta_actions(
        [
            {"action_type": "OMNI_PURCHASE", "value": "2"},
            {"action_type": " Lead ", "value": "1"},
        ],
        [{"action_type": "Omni_Purchase", "value": "300"}],
    )
    assert metrics.reservations == 2
    assert metrics.reservation_value == 300.0
    assert metrics.email_contacts == 1


def test_fractional_counts_round_half_up_and_bad_values_are_skipped():
    metrics = parse_meta_actions(
        [
            {"action_type": "omni_search", "value": "2.5"},
            {"action_type": "omni_view_content", "value": "-4"},
            {"action_type": "omni_initiated_checkout", "value": "abc"},
            {"action_type": "omni_purchase", "value": None},
            {"value": "9"},
        ]
    )
    assert metrics.booking_step_1 == 3
    assert metrics.booking_step_2 == 0
    assert metrics.booking_step_3 == 0
    assert metrics.reservations == 0
    assert isinstance(metrics.booking_step_1, int)


def test_missing_actions_give_zero_funnel():
    assert parse_meta_actions(None) == FunnelMetrics()


def test_custom_rule_replaces_default_bucket():
    rule = custom_event_rule(FunnelBucket.CLICK_TO_CALL, "998877")
    metrics = parse_meta_actions(
        [
            {"action_type": "offsite_conversion.custom.998877", "value": "7"},
            {"action_type": "click_to_call_call_confirm", "value": "2"},
        ],
        custom_rules=[rule],
    )
    assert metrics.click_to_call == 7


def test_each_action_type_feeds_one_bucket():
    seen = {}
    for rule in META_ACTION_RULES:
        for action_type in rule.action_types:
            assert action_type not in seen, f"{action_type} in {seen.get(action_type)} and {rule.bucket}"
            seen[action_type] = rule.bucket


# ---------------------------------------------------------------------------
# Google conversions
# ---------------------------------------------------------------------------


def test_google_names_are_classified_once():
    assert classify_conversion("Booking engine step 3 - complete") is FunnelBucket.STEP_3
    assert classify_conversion("Rezerwacja") is FunnelBucket.RESERVATION
    assert classify_conversion("Krok 1 - wyszukiwanie") is FunnelBucket.STEP_1
    assert classify_conversion("Telefon") is FunnelBucket.CLICK_TO_CALL
    assert classify_conversion("Formularz kontaktowy") is FunnelBucket.EMAIL
    # a step marker without a number is neither a step nor a reservation
    assert classify_conversion("purchase step") is None
    assert classify_conversion("Page view") is None


def test_reservation_rule_excludes_step_markers():
    reservation = next(r for r in GOOGLE_CONVERSION_RULES if r.bucket is FunnelBucket.RESERVATION)
    assert reservation.matches("Zakup online")
    assert not reservation.matches("Booking engine complete")
    assert not reservation.matches("krok zakupu")


def test_parse_google_conversions_counts_and_value():
    metrics = parse_google_conversions(
        [
            {"conversion_name": "Rezerwacja", "conversions": 2.4, "conversion_value": 900.456},
            {"conversion_name": "Booking engine step 3 - complete", "conversions": 5},
            {"name": "Krok 2", "value": "4"},
            {"conversion_name": "Telefon", "conversions": 1.5},
            {"conversion_name": "Unknown thing", "conversions": 10},
        ]
    )
    assert metrics.reservations == 2
    assert metrics.reservation_value == 900.46
    assert metrics.booking_step_3 == 5
    assert metrics.booking_step_2 == 4
    assert metrics.click_to_call == 2


# ---------------------------------------------------------------------------
# Shared helpers
# ---------------------------------------------------------------------------


def test_parse_value_rejects_invalid_input():
    assert parse_value("3") == 3.0
    assert parse_value("") is None
    assert parse_value("nan") is None
    assert parse_value(-1) is None
    assert parse_value({"x": 1}) is None


def test_sanitize_number_strips_formatting():
    assert sanitize_number("1200.50 zł") == 1200.5
    assert sanitize_number("-3") == 0.0
    assert sanitize_number(None) == 0.0


def test_funnel_inversions_only_flag_nonzero_lower_steps():
    warnings = check_funnel_inversions(
        FunnelMetrics(booking_step_1=10, booking_step_2=12, booking_step_3=0, reservations=4)
    )
    assert len(warnings) == 1
    assert warnings[0].startswith("booking_step_2")
    assert check_funnel_inversions(FunnelMetrics(reservations=5)) == []


def test_aggregate_conversion_metrics_rerounds_after_sum():
    campaigns = [
        {name: 0.1 for name in FUNNEL_FIELDS} | {"reservation_value": 0.1},
        {name: 0.2 for name in FUNNEL_FIELDS} | {"reservation_value": 0.2},
        {"reservations": 1, "reservation_value": "100.004"},
    ]
    totals = aggregate_conversion_metrics(campaigns)
    assert totals.reservations == 1
    assert totals.booking_step_1 == 0
    assert totals.reservation_value == 100.3
    assert all(isinstance(getattr(totals, name), int) for name in FUNNEL_FIELDS)
