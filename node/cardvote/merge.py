# baseline + activity -> display counters
from typing import Dict, Iterable, Mapping

from .models import ActivityRecord, CardBaseline, MergedView

EMPTY_ACTIVITY = ActivityRecord()


def merged_counts(
    base_count_a: int,
    base_count_b: int,
    base_comment_count: int,
    activity: ActivityRecord,
) -> MergedView:
    """
    Pure and total. With the empty record it returns the baseline unchanged,
    and every output grows with the corresponding activity field.
    """
    return MergedView(
        count_a=base_count_a + activity.count_a,
        count_b=base_count_b + activity.count_b,
        comment_count=base_comment_count + len(activity.comments),
    )


def merge(baseline: CardBaseline, activity: ActivityRecord = EMPTY_ACTIVITY) -> MergedView:
    return merged_counts(baseline.count_a, baseline.count_b, baseline.comment_count, activity)


def merge_all(
    baselines: Iterable[CardBaseline],
    activity: Mapping[str, ActivityRecord],
) -> Dict[str, MergedView]:
    """Merged view per card id; cards without an id are skipped."""
    result: Dict[str, MergedView] = {}
    for card in baselines:
        if card.id is None:
            continue
        result[card.id] = merge(card, activity.get(card.id, EMPTY_ACTIVITY))
    return result
