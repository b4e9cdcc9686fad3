"""
Swing Persistence

The analysis core never talks to storage. It builds a SwingRecord and
hands it to a SwingStore supplied by the caller; any store error is
reported as PersistenceFailure so the caller can retry saving without
re-running the analysis.
"""

import logging
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Dict, Optional, Protocol, Tuple

from ..domain.analysis import AnalysisOutcome
from ..domain.errors import PersistenceFailure

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SwingRecord:
    """
    Everything a store needs to keep one analyzed swing.

    client_request_id makes saving idempotent: a store that sees the same
    id twice must return the swing it already saved.
    """
    client_request_id: str
    analysis_id: str
    score: int
    label: str
    insufficient_data: bool
    raw_values: Dict[str, Optional[float]]
    normalized_values: Dict[str, float]
    cues: Tuple[str, ...]
    drill_names: Tuple[Optional[str], ...]
    primary_drill_id: Optional[str]
    events: Dict[str, int]
    fps: float
    video_ref: Optional[str] = None
    session_id: Optional[str] = None
    stride_length_cm: Optional[float] = None
    created_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def to_dict(self) -> dict:
        return asdict(self)


class SwingStore(Protocol):
    """Storage collaborator. Returns the stored swing's id."""

    def save(self, record: SwingRecord) -> str: ...


def build_swing_record(
    outcome: AnalysisOutcome,
    video_ref: Optional[str] = None,
    session_id: Optional[str] = None,
    client_request_id: Optional[str] = None,
    stride_length_cm: Optional[float] = None,
) -> SwingRecord:
    """
    Build the record for a completed analysis.

    Raises:
        ValueError: the outcome has no score (retake, error or cancelled)
    """
    if outcome.score is None or outcome.metrics is None:
        raise ValueError(f"Analysis {outcome.id} ended in {outcome.state.value}; nothing to save")

    primary = outcome.primary_card
    return SwingRecord(
        client_request_id=client_request_id or str(uuid.uuid4()),
        analysis_id=outcome.id,
        score=outcome.score.overall,
        label=outcome.score.label,
        insufficient_data=outcome.score.insufficient_data,
        raw_values=dict(outcome.metrics.metrics),
        normalized_values=dict(outcome.score.per_metric_normalized),
        cues=tuple(card.cue for card in outcome.cards),
        drill_names=tuple(card.drill.name if card.drill else None for card in outcome.cards),
        primary_drill_id=primary.drill.drill_id if primary and primary.drill else None,
        events=outcome.events.as_dict(),
        fps=outcome.fps,
        video_ref=video_ref,
        session_id=session_id,
        stride_length_cm=stride_length_cm,
    )


def save_swing(store: SwingStore, record: SwingRecord) -> str:
    """
    Hand a record to the store.

    Raises:
        PersistenceFailure: the store raised; the record can be saved again
    """
    try:
        swing_id = store.save(record)
    except Exception as e:
        logger.error(f"Saving swing {record.client_request_id} failed: {e}")
        raise PersistenceFailure(f"Could not save swing: {e}") from e
    logger.info(f"Saved swing {swing_id} (request {record.client_request_id})")
    return swing_id


class InMemorySwingStore:
    """Dict-backed SwingStore, idempotent on client_request_id."""

    def __init__(self):
        self._records: Dict[str, SwingRecord] = {}
        self._ids: Dict[str, str] = {}

    def save(self, record: SwingRecord) -> str:
        existing = self._ids.get(record.client_request_id)
        if existing is not None:
            return existing
        swing_id = str(uuid.uuid4())
        self._records[swing_id] = record
        self._ids[record.client_request_id] = swing_id
        return swing_id

    def get(self, swing_id: str) -> Optional[SwingRecord]:
        return self._records.get(swing_id)

    def __len__(self) -> int:
        return len(self._records)
