"""
Observation Ingestor for Weather Markov Chains

Normalizes raw historical weather records into an ordered sequence of
canonical discrete states.

Classification is an explicit, ordered keyword rule list: a free-text
condition such as "Patchy light rain" maps to the first rule whose keyword
appears in it (case-insensitive), otherwise to the default state.

Accepted payloads:
- WeatherAPI history response: forecast.forecastday[] with
  ``date`` and ``day.condition.text``
- A list (or a mapping with a ``days``/``records`` list) of entries with
  ``date`` and ``condition`` (string or ``{"text": ...}``)
- Either of the above as a JSON string

Usage:
    sequence = ingest_observations(api_response)
    sequence.states        # ("Sunny", "Sunny", "Rainy", ...)
    sequence.state_order   # ("Sunny", "Rainy", "Cloudy") - first-seen order

Created: 2026-01-04
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import pandas as pd

from weather_core.exceptions import ValidationError

logger = logging.getLogger(__name__)

MIN_OBSERVATION_DAYS = 2


@dataclass(frozen=True)
class ClassificationRule:
    """Keyword rule: a description containing any keyword maps to ``state``."""

    state: str
    keywords: Tuple[str, ...]

    def matches(self, description: str) -> bool:
        text = description.lower()
        return any(k in text for k in self.keywords)


DEFAULT_RULES: Tuple[ClassificationRule, ...] = (
    ClassificationRule("Rainy", ("rain", "drizzle", "shower", "thunder", "sleet")),
    ClassificationRule("Cloudy", ("cloud", "overcast", "mist", "fog")),
)
DEFAULT_STATE = "Sunny"


class ConditionClassifier:
    """
    Map free-text condition descriptions to canonical weather states.

    Rule order matters: the first matching rule wins, so more specific
    keywords must come before broad ones. Anything unmatched falls through
    to ``default_state``.

    Example:
        >>> clf = ConditionClassifier()
        >>> clf.classify("Light rain shower")
        'Rainy'
        >>> clf.classify("Partly cloudy")
        'Cloudy'
        >>> clf.classify("Clear")
        'Sunny'
    """

    def __init__(
        self,
        rules: Optional[Iterable[ClassificationRule]] = None,
        default_state: str = DEFAULT_STATE,
    ):
        self.rules: Tuple[ClassificationRule, ...] = tuple(
            ClassificationRule(r.state, tuple(k.lower() for k in r.keywords))
            for r in (DEFAULT_RULES if rules is None else rules)
        )
        self.default_state = default_state

        logger.debug(
            f"ConditionClassifier initialized: {len(self.rules)} rules, default={default_state}"
        )

    @classmethod
    def from_settings(cls, classification) -> "ConditionClassifier":
        """Build from a ``ClassificationConfig`` settings model."""
        return cls(
            rules=[ClassificationRule(r.state, tuple(r.keywords)) for r in classification.rules],
            default_state=classification.default_state,
        )

    @property
    def alphabet(self) -> Tuple[str, ...]:
        """Every state this classifier can emit, in rule order."""
        names: List[str] = []
        for rule in self.rules:
            if rule.state not in names:
                names.append(rule.state)
        if self.default_state not in names:
            names.append(self.default_state)
        return tuple(names)

    def classify(self, description: str) -> str:
        for rule in self.rules:
            if rule.matches(description):
                return rule.state
        return self.default_state

    def classify_many(self, descriptions: Iterable[str]) -> List[str]:
        return [self.classify(d) for d in descriptions]


@dataclass(frozen=True)
class ObservationSequence:
    """
    Date-ascending, gap-free sequence of classified daily states.

    ``state_order`` is the first-seen order of states in ``states`` and is
    the canonical ordering for the rest of the pipeline.
    """

    states: Tuple[str, ...]
    dates: Tuple[date, ...] = field(default_factory=tuple)
    state_order: Tuple[str, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        if not self.state_order:
            object.__setattr__(self, "state_order", first_seen_order(self.states))

    def __len__(self) -> int:
        return len(self.states)

    @property
    def last_observed(self) -> Optional[date]:
        return self.dates[-1] if self.dates else None

    def to_frame(self) -> pd.DataFrame:
        data: Dict[str, Any] = {"state": list(self.states)}
        if self.dates:
            data = {"date": list(self.dates), **data}
        return pd.DataFrame(data)


def first_seen_order(states: Iterable[str]) -> Tuple[str, ...]:
    """Distinct states in order of first appearance."""
    return tuple(dict.fromkeys(states))


# =============================================================================
# Payload normalisation
# =============================================================================

def _decode(payload: Any) -> Any:
    if isinstance(payload, (bytes, bytearray)):
        payload = payload.decode("utf-8")
    if isinstance(payload, str):
        try:
            return json.loads(payload)
        except json.JSONDecodeError as e:
            raise ValidationError(
                "Weather payload is not valid JSON",
                context={"position": e.pos},
                cause=e,
            ) from e
    return payload


def _extract_entries(payload: Any) -> List[Any]:
    """Locate the per-day record list inside any supported payload shape."""
    if isinstance(payload, list):
        return payload

    if isinstance(payload, Mapping):
        forecast = payload.get("forecast")
        if isinstance(forecast, Mapping) and isinstance(forecast.get("forecastday"), list):
            return forecast["forecastday"]
        for key in ("days", "records", "forecastday"):
            if isinstance(payload.get(key), list):
                return payload[key]

    raise ValidationError(
        "Weather payload has no recognisable list of daily records",
        context={"type": type(payload).__name__},
    )


def _condition_text(entry: Mapping[str, Any]) -> Optional[str]:
    # WeatherAPI nests it under day.condition.text
    day = entry.get("day")
    if isinstance(day, Mapping):
        cond = day.get("condition")
        if isinstance(cond, Mapping):
            cond = cond.get("text")
        if isinstance(cond, str):
            return cond

    cond = entry.get("condition")
    if isinstance(cond, Mapping):
        cond = cond.get("text")
    if isinstance(cond, str):
        return cond
    return None


def normalize_records(payload: Any) -> pd.DataFrame:
    """
    Turn a raw payload into a DataFrame with ``date`` and ``condition``.

    Raises:
        ValidationError: On malformed payloads or records
    """
    entries = _extract_entries(_decode(payload))

    rows: List[Dict[str, Any]] = []
    for i, entry in enumerate(entries):
        if not isinstance(entry, Mapping):
            raise ValidationError(
                "Daily record is not an object", context={"index": i}
            )
        raw_date = entry.get("date")
        text = _condition_text(entry)
        if raw_date in (None, ""):
            raise ValidationError("Daily record is missing 'date'", context={"index": i})
        if text is None:
            raise ValidationError(
                "Daily record is missing a condition description", context={"index": i}
            )
        rows.append({"date": raw_date, "condition": text})

    df = pd.DataFrame(rows, columns=["date", "condition"])
    if df.empty:
        return df

    try:
        df["date"] = pd.to_datetime(df["date"]).dt.normalize()
    except (ValueError, TypeError) as e:
        raise ValidationError("Unparseable date in weather payload", cause=e) from e

    return df


# =============================================================================
# Ingestion
# =============================================================================

def ingest_observations(
    payload: Any,
    classifier: Optional[ConditionClassifier] = None,
) -> ObservationSequence:
    """
    Build an ObservationSequence from a raw historical payload.

    Records are sorted date-ascending before classification. Duplicate or
    missing dates are rejected, as are payloads with fewer than two days.

    Args:
        payload: Raw payload (see module docstring for accepted shapes)
        classifier: Condition classifier; defaults to the built-in rules

    Returns:
        ObservationSequence with first-seen state order

    Raises:
        ValidationError: On malformed or insufficient input
    """
    classifier = classifier or ConditionClassifier()
    df = normalize_records(payload)

    if len(df) < MIN_OBSERVATION_DAYS:
        raise ValidationError(
            f"Need at least {MIN_OBSERVATION_DAYS} days of history to observe a transition",
            context={"days": len(df)},
        )

    df = df.sort_values("date", kind="mergesort").reset_index(drop=True)

    dupes = df["date"][df["date"].duplicated()]
    if not dupes.empty:
        raise ValidationError(
            "Duplicate dates in weather history",
            context={"dates": [d.date().isoformat() for d in dupes.unique()][:5]},
        )

    gaps = df["date"].diff().dt.days.iloc[1:]
    if (gaps != 1).any():
        first_gap = int(gaps[gaps != 1].index[0])
        raise ValidationError(
            "Weather history has missing days",
            context={
                "after": df["date"].iloc[first_gap - 1].date().isoformat(),
                "before": df["date"].iloc[first_gap].date().isoformat(),
            },
        )

    states = tuple(classifier.classify_many(df["condition"]))
    dates = tuple(d.date() for d in df["date"])
    sequence = ObservationSequence(states=states, dates=dates)

    logger.debug(
        f"Ingested {len(sequence)} days {dates[0]}..{dates[-1]}, "
        f"states={sequence.state_order}"
    )
    return sequence


def sequence_from_states(
    states: Sequence[str],
    dates: Optional[Sequence[date]] = None,
) -> ObservationSequence:
    """Wrap an already-classified list of state names."""
    return ObservationSequence(
        states=tuple(states),
        dates=tuple(dates) if dates is not None else tuple(),
    )
