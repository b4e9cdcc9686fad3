"""
Services Layer

Business logic services for swing analysis.
These services orchestrate domain models and external dependencies.
"""

from .pose_detector import PoseDetector
from .pose_stream import PoseModel, PoseStreamAdapter
from .angle_calculator import AngleCalculator
from .phase_segmenter import PhaseSegmenter, SegmenterSettings, format_phases
from .metric_computer import compute_metrics, measure_stride_length_cm
from .bat_speed import BatSpeedEstimator, PlayerLevel
from .scoring_engine import ScoringEngine
from .coaching import CoachingSelector, DrillCatalog, InMemoryDrillCatalog
from .analysis_task import AnalysisSession, AnalysisTask, CancellationToken, ProgressUpdate
from .swing_analyzer import SwingAnalyzer
from .persistence import (
    InMemorySwingStore,
    SwingRecord,
    SwingStore,
    build_swing_record,
    save_swing,
)

__all__ = [
    "PoseDetector",
    "PoseModel",
    "PoseStreamAdapter",
    "AngleCalculator",
    "PhaseSegmenter",
    "SegmenterSettings",
    "format_phases",
    "compute_metrics",
    "measure_stride_length_cm",
    "BatSpeedEstimator",
    "PlayerLevel",
    "ScoringEngine",
    "CoachingSelector",
    "DrillCatalog",
    "InMemoryDrillCatalog",
    "AnalysisSession",
    "AnalysisTask",
    "CancellationToken",
    "ProgressUpdate",
    "SwingAnalyzer",
    "InMemorySwingStore",
    "SwingRecord",
    "SwingStore",
    "build_swing_record",
    "save_swing",
]
