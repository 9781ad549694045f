"""Resolution transition — moves matured predictions to resolved.

A prediction matures once today's date is on or after its resolution
date. Truth is never inferred: a judge (normally a human at the prompt)
supplies TRUE or FALSE for each matured prediction.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Callable, Sequence, Union

from augur.models.prediction import Prediction, ResolutionState, canonical_date


Judgment = Union[ResolutionState, bool, str]


class InvalidJudgment(ValueError):
    """Raised when a judge answers something other than TRUE/FALSE."""


@dataclass
class ResolutionOutcome:
    """Result of one resolution pass."""
    resolved: list[Prediction] = field(default_factory=list)
    still_pending: list[Prediction] = field(default_factory=list)


def is_matured(prediction: Prediction, today: Union[str, date]) -> bool:
    """True once today (canonical YYYY/MM/DD) is >= the resolution date."""
    return canonical_date(today) >= prediction.resolution_date


def parse_judgment(answer: Judgment) -> ResolutionState:
    if isinstance(answer, ResolutionState):
        state = answer
    elif isinstance(answer, bool):
        state = ResolutionState.TRUE if answer else ResolutionState.FALSE
    else:
        try:
            state = ResolutionState(str(answer).strip().upper())
        except ValueError:
            raise InvalidJudgment(f"Expected TRUE or FALSE, got {answer!r}") from None
    if state == ResolutionState.UNRESOLVED:
        raise InvalidJudgment("Expected TRUE or FALSE, got UNRESOLVED")
    return state


def resolve(
    pending: Sequence[Prediction],
    today: Union[str, date],
    judge: Callable[[Prediction], Judgment],
) -> ResolutionOutcome:
    """Partition pending predictions, stamping matured ones with a judgment.

    The judge is called once per matured prediction, in input order.
    Predictions that have not matured pass through untouched.
    """
    today_str = canonical_date(today)
    outcome = ResolutionOutcome()
    for prediction in pending:
        if today_str >= prediction.resolution_date:
            state = parse_judgment(judge(prediction))
            outcome.resolved.append(prediction.resolved_as(state))
        else:
            outcome.still_pending.append(prediction)
    return outcome
