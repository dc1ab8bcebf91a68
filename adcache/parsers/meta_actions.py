"""adcache — Meta Actions Parser.

Turns Meta insight ``actions`` / ``action_values`` arrays into FunnelMetrics.

Meta reports the same conversion under several action types (the omni
channel rollup, the pixel event, the bare event name). Each bucket therefore
lists its action types in priority tiers: the first tier present in the
payload is used and lower tiers are ignored, so a purchase counted as both
``omni_purchase`` and ``offsite_conversion.fb_pixel_purchase`` is counted once.
"""

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from adcache.models.schemas import FunnelMetrics
from adcache.parsers.funnel import (
    FunnelBucket,
    build_funnel,
    check_funnel_inversions,
    parse_value,
)
from adcache.core.logging import get_logger

logger = get_logger("parsers.meta")


@dataclass(frozen=True)
class ActionRule:
    """Priority-ordered action types feeding one funnel bucket."""

    bucket: FunnelBucket
    tiers: Tuple[Tuple[str, ...], ...]

    @property
    def action_types(self) -> List[str]:
        return [action_type for tier in self.tiers for action_type in tier]


META_ACTION_RULES: Tuple[ActionRule, ...] = (
    ActionRule(FunnelBucket.CLICK_TO_CALL, (("click_to_call_call_confirm",),)),
    ActionRule(FunnelBucket.EMAIL, (("lead", "onsite_conversion.lead_grouped"),)),
    ActionRule(
        FunnelBucket.STEP_1,
        (("omni_search",), ("offsite_conversion.fb_pixel_search",), ("search",)),
    ),
    ActionRule(
        FunnelBucket.STEP_2,
        (
            ("omni_view_content",),
            ("offsite_conversion.fb_pixel_view_content",),
            ("view_content",),
        ),
    ),
    ActionRule(
        FunnelBucket.STEP_3,
        (
            ("omni_initiated_checkout",),
            ("offsite_conversion.fb_pixel_initiate_checkout",),
            ("initiate_checkout",),
        ),
    ),
    ActionRule(
        FunnelBucket.RESERVATION,
        (("omni_purchase",), ("offsite_conversion.fb_pixel_purchase",), ("purchase",)),
    ),
)

# Reservation value is read from action_values with the reservation tiers
META_VALUE_RULE = META_ACTION_RULES[-1]


def custom_event_rule(bucket: FunnelBucket, *event_ids: str) -> ActionRule:
    """Rule for client-specific custom conversions, e.g. a phone-click pixel event.

    Custom rules are evaluated before the defaults; when one fires, the
    default rule of the same bucket is skipped.
    """
    return ActionRule(
        bucket, (tuple(f"offsite_conversion.custom.{event_id}".lower() for event_id in event_ids),)
    )


def _totals_by_type(entries: Iterable[Mapping[str, Any]], label: str) -> Dict[str, float]:
    totals: Dict[str, float] = {}
    for entry in entries or []:
        action_type = str(entry.get("action_type") or "").strip().lower()
        if not action_type:
            continue
        value = parse_value(entry.get("value"), f"{label}:{action_type}")
        if value is None:
            continue
        totals[action_type] = totals.get(action_type, 0.0) + value
    return totals


def _resolve(rule: ActionRule, totals: Mapping[str, float]) -> Optional[float]:
    """Sum of the first tier that has any action present."""
    for tier in rule.tiers:
        present = [action_type for action_type in tier if action_type in totals]
        if present:
            return sum(totals[action_type] for action_type in present)
    return None


def parse_meta_actions(
    actions: Optional[Sequence[Mapping[str, Any]]],
    action_values: Optional[Sequence[Mapping[str, Any]]] = None,
    campaign_label: Optional[str] = None,
    custom_rules: Sequence[ActionRule] = (),
) -> FunnelMetrics:
    """Classify Meta actions into funnel buckets."""
    label = campaign_label or "meta campaign"
    totals = _totals_by_type(actions or [], label)

    counts: Dict[FunnelBucket, float] = {}
    for rule in (*custom_rules, *META_ACTION_RULES):
        if rule.bucket in counts:
            continue
        value = _resolve(rule, totals)
        if value is not None:
            counts[rule.bucket] = value

    value_totals = _totals_by_type(action_values or [], f"{label}:values")
    reservation_value = _resolve(META_VALUE_RULE, value_totals) or 0.0

    metrics = build_funnel(counts, reservation_value)
    check_funnel_inversions(metrics, label, "meta")
    return metrics
