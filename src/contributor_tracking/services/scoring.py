from __future__ import annotations

# (upper bound in working minutes, score delta), checked in order.
SCORE_BANDS: tuple[tuple[int, int], ...] = (
    (120, 5),
    (240, 3),
    (360, 1),
)
SLOW_SUBMISSION_SCORE = -3


def resolve_score(working_minutes: int) -> int:
    for upper_bound, score in SCORE_BANDS:
        if working_minutes <= upper_bound:
            return score
    return SLOW_SUBMISSION_SCORE
