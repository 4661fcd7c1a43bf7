from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from .models import Response, ResponseStatus, ScheduleDate

OK_WEIGHT = 2
MAYBE_WEIGHT = 1
ALTERNATIVE_RATIO = 0.8


@dataclass
class DateTally:
    ok: int = 0
    maybe: int = 0
    ng: int = 0

    @property
    def total(self) -> int:
        return self.ok + self.maybe + self.ng

    @property
    def score(self) -> int:
        return self.ok * OK_WEIGHT + self.maybe * MAYBE_WEIGHT

    def add(self, status: ResponseStatus) -> None:
        if status == ResponseStatus.OK:
            self.ok += 1
        elif status == ResponseStatus.MAYBE:
            self.maybe += 1
        else:
            self.ng += 1

    def percentages(self) -> Dict[str, int]:
        return {
            "ok": _percent(self.ok, self.total),
            "maybe": _percent(self.maybe, self.total),
            "ng": _percent(self.ng, self.total),
        }


@dataclass
class Participation:
    fully_available: int = 0
    partially_available: int = 0
    unavailable: int = 0


@dataclass
class ScheduleStatistics:
    total_responses: int
    tallies: Dict[str, DateTally]
    percentages: Dict[str, Dict[str, int]]
    scores: Dict[str, int]
    optimal_date_id: str
    alternative_date_ids: List[str] = field(default_factory=list)
    participation: Participation = field(default_factory=Participation)


def _percent(count: int, total: int) -> int:
    if total == 0:
        return 0
    # half-up, so 12.5 -> 13 rather than banker's rounding
    return int(math.floor(count / total * 100 + 0.5))


def classify_responder(response: Response, date_ids: Sequence[str]) -> str:
    """Return "fully", "partially" or "unavailable" for one responder.

    Only statuses for dates that still exist on the schedule are considered.
    """
    answered = [s for s in (response.status_for(d) for d in date_ids) if s is not None]
    if answered and all(s == ResponseStatus.OK for s in answered):
        return "fully"
    if any(s in (ResponseStatus.OK, ResponseStatus.MAYBE) for s in answered):
        return "partially"
    return "unavailable"


def aggregate_responses(
    dates: Sequence[ScheduleDate],
    responses: Sequence[Response],
) -> Optional[ScheduleStatistics]:
    """
    Compute per-date tallies, percentages, scores, the optimal date and
    participation classes.

    Returns None when there are no responses: callers must render that as
    "no statistics yet", not as a table of zeros.
    """
    if not responses or not dates:
        return None

    date_ids = [d.id for d in dates]
    tallies: Dict[str, DateTally] = {d: DateTally() for d in date_ids}

    for response in responses:
        for date_id in date_ids:
            status = response.status_for(date_id)
            if status is not None:
                tallies[date_id].add(status)

    scores = {d: tallies[d].score for d in date_ids}

    # strict ">" keeps the earliest declared date on ties
    optimal_date_id = date_ids[0]
    for date_id in date_ids[1:]:
        if scores[date_id] > scores[optimal_date_id]:
            optimal_date_id = date_id

    threshold = scores[optimal_date_id] * ALTERNATIVE_RATIO
    alternatives = [d for d in date_ids if d != optimal_date_id and scores[d] >= threshold]

    participation = Participation()
    for response in responses:
        kind = classify_responder(response, date_ids)
        if kind == "fully":
            participation.fully_available += 1
        elif kind == "partially":
            participation.partially_available += 1
        else:
            participation.unavailable += 1

    return ScheduleStatistics(
        total_responses=len(responses),
        tallies=tallies,
        percentages={d: tallies[d].percentages() for d in date_ids},
        scores=scores,
        optimal_date_id=optimal_date_id,
        alternative_date_ids=alternatives,
        participation=participation,
    )
