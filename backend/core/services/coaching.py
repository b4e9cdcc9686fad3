"""
Coaching Selector Service

Turns the weakest metrics of a swing into coaching cards: a short cue,
the reason behind it, and a drill resolved through a drill catalog.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, Iterator, List, Mapping, Optional, Protocol, Sequence, Tuple

from ..domain.analysis import CoachingCard, DrillReference

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CueEntry:
    """
    Canonical coaching cue for one metric.

    Attributes:
        cue: One-line, game-ready instruction
        why: Short reason a coach can read out loud
        drill_name: Preferred drill
        alt_drill_names: Fallback drill names, tried in order
    """
    cue: str
    why: str
    drill_name: str
    alt_drill_names: Tuple[str, ...] = ()

    @property
    def drill_names(self) -> Tuple[str, ...]:
        return (self.drill_name,) + self.alt_drill_names


CUE_MAP: Dict[str, CueEntry] = {
    "head_drift_cm": CueEntry(
        cue="Quiet eyes; brace the front side.",
        why="Too much head travel hurts tracking & barrel control.",
        drill_name="Wall Head Check",
        alt_drill_names=("Head Still Wall Drill", "Quiet Eyes Wall"),
    ),
    "attack_angle_deg": CueEntry(
        cue="Turn the barrel later; stay through the line-drive window.",
        why="Downward path reduces solid contact for youth velo.",
        drill_name="PVC Tilt Ladder",
        alt_drill_names=("Tilt Ladder", "PVC Attack Angle"),
    ),
    "hip_shoulder_sep_deg": CueEntry(
        cue="Hold the load; fire hips first, hands last.",
        why="Better sequence transfers energy up the chain.",
        drill_name="Step-Behind Sequence",
        alt_drill_names=("Step-Behind Separation", "Hip-Lead Step-Behind"),
    ),
    "bat_lag_deg": CueEntry(
        cue="Knob leads; keep the barrel lagging behind.",
        why="Lag creates bat speed without casting.",
        drill_name="Over/Underload Swings",
        alt_drill_names=("Heavy-Game-Light", "Knob-Lead Ladder"),
    ),
    "torso_tilt_deg": CueEntry(
        cue="Keep an athletic hinge at launch.",
        why="Stable posture anchors the swing plane.",
        drill_name="PVC Posture Holds",
        alt_drill_names=("Posture Holds", "Hinge & Hold"),
    ),
    "stride_var_pct": CueEntry(
        cue="Repeat the same stride length every time.",
        why="Consistency = timing you can trust.",
        drill_name="Tape Ladder Strides",
        alt_drill_names=("Stride Ladder", "Stride Tape Drill"),
    ),
    "finish_balance_idx": CueEntry(
        cue="Stick the finish for 2 seconds.",
        why="Balanced finish = controlled swing path.",
        drill_name="Stick the Finish",
        alt_drill_names=("Freeze Finish", "Hold the Finish"),
    ),
    "contact_timing_frames": CueEntry(
        cue="Let the ball travel; match contact point.",
        why="Timing inside the window improves barrel quality.",
        drill_name="Contact Point Tee Ladder",
        alt_drill_names=("Tee Ladder", "Let-It-Travel Tee"),
    ),
    "time_to_contact_ms": CueEntry(
        cue="Same tempo every swing; short and direct to the ball.",
        why="A repeatable launch-to-contact time lets you start on time.",
        drill_name="K-Vest Tempo Reps",
        alt_drill_names=("Tempo Reps",),
    ),
    "bat_speed_mph": CueEntry(
        cue="Swing hard through the ball, not at it.",
        why="Bat speed is the biggest driver of exit velocity.",
        drill_name="One-Hand Finish",
        alt_drill_names=("Walk-Up Drill",),
    ),
    "arm_extension_cm": CueEntry(
        cue="Meet it out front and extend through contact.",
        why="Full extension keeps the barrel in the zone longer.",
        drill_name="Contact Point Drill",
        alt_drill_names=("Extension Tee",),
    ),
    "shoulder_tilt_deg": CueEntry(
        cue="Match your shoulders to the pitch plane.",
        why="Shoulder tilt sets the bat path into the zone.",
        drill_name="Launch Position Check",
        alt_drill_names=("Posture Stick Drill",),
    ),
}


class DrillCatalog(Protocol):
    """Drill lookup collaborator."""

    def find_drill(self, metric: str, names: Sequence[str]) -> Optional[DrillReference]:
        """Resolve a drill for a metric, trying names in order. None if nothing matches."""
        ...


class InMemoryDrillCatalog:
    """
    Drill catalog backed by a list of drills.

    Lookup order: the preferred drill name, then the alternates, then the
    first drill whose goal metric matches. Names match case-insensitively.
    """

    def __init__(self, drills: Iterable[DrillReference] = ()):
        self._drills: List[DrillReference] = list(drills)
        self._by_name: Dict[str, DrillReference] = {}
        self._by_metric: Dict[str, List[DrillReference]] = {}
        for drill in self._drills:
            self._by_name.setdefault(drill.name.casefold(), drill)
            if drill.goal_metric:
                self._by_metric.setdefault(drill.goal_metric, []).append(drill)

    def __len__(self) -> int:
        return len(self._drills)

    def __iter__(self) -> Iterator[DrillReference]:
        return iter(self._drills)

    def get(self, drill_id: str) -> Optional[DrillReference]:
        return next((d for d in self._drills if d.drill_id == drill_id), None)

    def for_metric(self, metric: str) -> List[DrillReference]:
        return list(self._by_metric.get(metric, []))

    def find_drill(self, metric: str, names: Sequence[str]) -> Optional[DrillReference]:
        for name in names:
            drill = self._by_name.get(name.casefold())
            if drill is not None:
                return drill
        candidates = self._by_metric.get(metric)
        return candidates[0] if candidates else None


class CoachingSelector:
    """
    Builds coaching cards for the weakest metrics.

    The selector never fails because of the drill catalog: a lookup that
    errors or finds nothing still yields a card, with drill set to None.

    Usage:
        selector = CoachingSelector(catalog)
        cards = selector.select(score.weakest)
    """

    DEFAULT_CARD_COUNT = 2

    def __init__(
        self,
        catalog: Optional[DrillCatalog] = None,
        cue_map: Mapping[str, CueEntry] = CUE_MAP,
    ):
        self.catalog = catalog
        self.cue_map = cue_map

    def select(self, weakest: Sequence[str], count: int = DEFAULT_CARD_COUNT) -> List[CoachingCard]:
        """
        Cards for up to `count` metrics, weakest first.

        Metrics without a canonical cue are skipped.
        """
        cards: List[CoachingCard] = []
        for metric in weakest:
            if len(cards) >= count:
                break
            entry = self.cue_map.get(metric)
            if entry is None:
                logger.debug(f"No coaching cue for {metric}; skipping")
                continue
            cards.append(CoachingCard(
                metric=metric,
                cue=entry.cue,
                why=entry.why,
                drill=self._lookup(metric, entry),
            ))
        return cards

    def _lookup(self, metric: str, entry: CueEntry) -> Optional[DrillReference]:
        if self.catalog is None:
            return None
        try:
            return self.catalog.find_drill(metric, entry.drill_names)
        except Exception as e:
            logger.warning(f"Drill lookup failed for {metric}: {e}")
            return None
