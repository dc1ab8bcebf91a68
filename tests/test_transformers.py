"""
Guards against: raw platform rows reaching the cache with string numbers,
Google ``cost`` being lost on the way to ``total_spend``, and per-campaign
daily rows not being summed into one row per day.
"""

from adcache.connectors.google import transformer as google_transformer
from adcache.connectors.meta import transformer as meta_transformer
from adcache.models.schemas import Platform


def test_meta_enhance_coerces_numbers_and_parses_actions():
    row = {
        "campaign_id": "42",
        "campaign_name": "Autumn",
        "spend": "123.45",
        "impressions": "1000",
        "clicks": "30",
        "reach": "800",
        "actions": [
            {"action_type": "omni_purchase", "value": "3"},
            {"action_type": "omni_search", "value": "20"},
        ],
        "action_values": [{"action_type": "omni_purchase", "value": "900"}],
    }

    enhanced = meta_transformer.enhance_campaign(row)

    assert enhanced["spend"] == 123.45
    assert enhanced["impressions"] == 1000
    assert enhanced["conversions"] == 3
    assert enhanced["reservations"] == 3
    assert enhanced["booking_step_1"] == 20
    assert enhanced["reservation_value"] == 900.0
    assert enhanced["actions"] == row["actions"]


def test_meta_to_unified():
    unified = meta_transformer.to_unified(
        meta_transformer.enhance_campaign(
            {"campaign_id": "7", "campaign_name": "A", "spend": "50", "impressions": "500", "clicks": "10"}
        )
    )
    assert unified.id == "meta_7"
    assert unified.platform is Platform.META
    assert unified.ctr == 2.0
    assert unified.cpc == 5.0


def test_google_enhance_keeps_cost_and_classifies_conversions():
    enhanced = google_transformer.enhance_campaign(
        {
            "campaign_id": "9",
            "campaign_name": "Brand",
            "cost": 12.345678,
            "impressions": 400,
            "clicks": 8,
            "conversions": 2.6,
            "conversion_actions": [
                {"conversion_name": "Rezerwacja", "conversions": 2, "conversion_value": 500},
                {"conversion_name": "Krok 1", "conversions": 9},
            ],
        }
    )

    assert enhanced["cost"] == 12.35
    assert "spend" not in enhanced
    assert enhanced["conversions"] == 3
    assert enhanced["reservations"] == 2
    assert enhanced["booking_step_1"] == 9
    assert google_transformer.to_unified(enhanced).total_spend == 12.35


def test_google_daily_metrics_sums_campaigns_per_day():
    rows = [
        {"campaign_id": "1", "date": "2025-10-13", "cost": 10.0, "impressions": 100, "clicks": 5},
        {"campaign_id": "2", "date": "2025-10-13", "cost": 5.0, "impressions": 50, "clicks": 1},
        {"campaign_id": "1", "date": "2025-10-14", "cost": 7.0, "impressions": 70, "clicks": 2},
        {"campaign_id": "3", "date": None, "cost": 99.0},
    ]

    days = google_transformer.daily_metrics(rows)

    assert list(days) == ["2025-10-13", "2025-10-14"]
    assert days["2025-10-13"].total_spend == 15.0
    assert days["2025-10-13"].total_clicks == 6
    assert days["2025-10-14"].total_impressions == 70


def test_meta_daily_metrics():
    metrics = meta_transformer.daily_metrics(
        {
            "date_start": "2025-10-14",
            "spend": "20",
            "impressions": "2000",
            "clicks": "40",
            "reach": "1500",
            "actions": [{"action_type": "lead", "value": "2"}],
        }
    )
    assert metrics.total_spend == 20.0
    assert metrics.total_reach == 1500
    assert metrics.email_contacts == 2
