"""
Swing Analyzer Service

High-level service that runs one analysis attempt end to end:
pose stream -> phase segmenter -> metric computer -> scoring engine ->
coaching selector.

This is the main entry point for analyzing swings.
"""

import logging
import uuid
from typing import Callable, List, Mapping, Optional, Sequence

from ..config import load_drill_catalog, load_metric_specs
from ..domain.analysis import (
    AnalysisOutcome,
    AnalysisState,
    AttemptLifecycle,
    MetricSpec,
    SegmentationResult,
)
from ..domain.errors import AnalysisCancelled, PoseDetectionFailure
from ..domain.pose import FrameKeypoints, Handedness
from .analysis_task import CancellationToken
from .coaching import CoachingSelector, DrillCatalog
from .metric_computer import compute_metrics
from .phase_segmenter import PhaseSegmenter
from .pose_detector import get_video_info, iter_video_frames
from .pose_stream import PoseModel, PoseStreamAdapter
from .scoring_engine import ScoringEngine

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, str], None]


def _no_progress(percent: int, message: str) -> None:
    pass


class SwingAnalyzer:
    """
    Analyzes baseball/softball swings from video or keypoint frames.

    This service:
    1. Runs the caller's pose model over the video (or takes frames)
    2. Locates swing events, asking for a retake when tracking is poor
    3. Computes biomechanical metrics at those events
    4. Scores the swing against the metric specifications
    5. Builds coaching cards for the weakest metrics

    The analyzer holds configuration only. The pose model belongs to the
    caller, and every call produces a fresh, immutable AnalysisOutcome.

    Usage:
        analyzer = SwingAnalyzer()

        # Analyze from video file
        with PoseDetector() as detector:
            outcome = analyzer.analyze_video("swing.mp4", detector)

        # Or analyze pre-detected frames
        outcome = analyzer.analyze_frames(frames, fps=60.0)
        if outcome.needs_retake:
            print(outcome.retake_reasons)
        else:
            print(f"Overall score: {outcome.score.overall}")
    """

    # Progress milestones (percent)
    DETECTION_START = 5
    DETECTION_END = 70
    SEGMENTED = 75
    SCORED = 85
    CARDS_BUILT = 95

    def __init__(
        self,
        specs: Optional[Mapping[str, MetricSpec]] = None,
        catalog: Optional[DrillCatalog] = None,
        handedness: Handedness = Handedness.RIGHT,
        segmenter: Optional[PhaseSegmenter] = None,
        scoring_engine: Optional[ScoringEngine] = None,
        card_count: int = CoachingSelector.DEFAULT_CARD_COUNT,
    ):
        """
        Args:
            specs: Metric specifications; the bundled ones if omitted
            catalog: Drill catalog; the bundled one if omitted
            handedness: Batting side
            segmenter: Phase segmenter; default settings if omitted
            scoring_engine: Scoring engine
            card_count: Coaching cards per swing
        """
        self.specs = dict(specs) if specs is not None else load_metric_specs()
        self.catalog = catalog if catalog is not None else load_drill_catalog()
        self.handedness = handedness
        self.segmenter = segmenter or PhaseSegmenter(handedness=handedness)
        self.scoring_engine = scoring_engine or ScoringEngine()
        self.selector = CoachingSelector(self.catalog)
        self.card_count = card_count

    # -------------------------------------------------------------------------
    # Main Analysis Methods
    # -------------------------------------------------------------------------

    def analyze_video(
        self,
        video_path: str,
        pose_model: PoseModel,
        frame_skip: int = 1,
        recent_stride_lengths: Sequence[float] = (),
        token: Optional[CancellationToken] = None,
        progress: Optional[ProgressCallback] = None,
    ) -> AnalysisOutcome:
        """
        Analyze a swing from a video file.

        Args:
            video_path: Path to video file
            pose_model: Initialized pose model owned by the caller
            frame_skip: Process every Nth frame (higher = faster but less accurate)
            recent_stride_lengths: Athlete's previous stride lengths in cm
            token: Checked between frames; cancelling raises AnalysisCancelled
            progress: Called with (percent, message)

        Returns:
            AnalysisOutcome (COMPLETE or NEEDS_RETAKE)

        Raises:
            PoseDetectionFailure: video unreadable or the model failed
            AnalysisCancelled: token was cancelled
        """
        progress = progress or _no_progress
        lifecycle = AttemptLifecycle()
        lifecycle.advance(AnalysisState.DETECTING)
        logger.info(f"Analyzing video {video_path} (frame_skip={frame_skip})")

        try:
            info = get_video_info(video_path)
            frames = self._detect_frames(video_path, info.fps, info.total_frames, pose_model, frame_skip, token, progress)
        except AnalysisCancelled:
            lifecycle.advance(AnalysisState.CANCELLED)
            raise
        except PoseDetectionFailure as e:
            lifecycle.advance(AnalysisState.ERROR)
            logger.error(f"Pose detection failed: {e}")
            raise

        return self._analyze_detected(frames, info.fps, lifecycle, recent_stride_lengths, token, progress)

    def analyze_frames(
        self,
        frames: Sequence[FrameKeypoints],
        fps: float,
        recent_stride_lengths: Sequence[float] = (),
        token: Optional[CancellationToken] = None,
        progress: Optional[ProgressCallback] = None,
    ) -> AnalysisOutcome:
        """
        Analyze a swing from already normalized keypoint frames.

        Args:
            frames: FrameKeypoints in any order (sorted by timestamp)
            fps: Frame rate of the source video
            recent_stride_lengths: Athlete's previous stride lengths in cm
            token: Cancellation token
            progress: Called with (percent, message)

        Returns:
            AnalysisOutcome (COMPLETE or NEEDS_RETAKE)
        """
        progress = progress or _no_progress
        lifecycle = AttemptLifecycle()
        lifecycle.advance(AnalysisState.DETECTING)
        progress(self.DETECTION_END, f"Received {len(frames)} frames")
        return self._analyze_detected(list(frames), fps, lifecycle, recent_stride_lengths, token, progress)

    # -------------------------------------------------------------------------
    # Pipeline
    # -------------------------------------------------------------------------

    def _detect_frames(
        self,
        video_path: str,
        fps: float,
        total_frames: int,
        pose_model: PoseModel,
        frame_skip: int,
        token: Optional[CancellationToken],
        progress: ProgressCallback,
    ) -> List[FrameKeypoints]:
        adapter = PoseStreamAdapter(pose_model)
        frames: List[FrameKeypoints] = []
        span = self.DETECTION_END - self.DETECTION_START

        progress(self.DETECTION_START, "Detecting body landmarks")
        for frame_index, timestamp_ms, image in iter_video_frames(video_path, frame_skip, fps):
            if token is not None:
                token.raise_if_cancelled()
            frame = adapter.process_image(image, frame_index, timestamp_ms)
            if frames and frame.timestamp_ms <= frames[-1].timestamp_ms:
                logger.warning(f"Dropping frame {frame_index}: timestamp does not increase")
                continue
            frames.append(frame)

            if total_frames > 0:
                done = min(1.0, (frame_index + 1) / total_frames)
                progress(self.DETECTION_START + int(span * done), f"Processed frame {frame_index + 1}/{total_frames}")

        logger.info(f"Detected poses in {sum(1 for f in frames if f.has_pose)}/{len(frames)} frames")
        return frames

    def _analyze_detected(
        self,
        frames: List[FrameKeypoints],
        fps: float,
        lifecycle: AttemptLifecycle,
        recent_stride_lengths: Sequence[float],
        token: Optional[CancellationToken],
        progress: ProgressCallback,
    ) -> AnalysisOutcome:
        analysis_id = str(uuid.uuid4())

        try:
            self._checkpoint(token)
            segmentation = self.segmenter.segment(frames)
        except AnalysisCancelled:
            lifecycle.advance(AnalysisState.CANCELLED)
            raise

        if segmentation.needs_retake:
            lifecycle.advance(AnalysisState.NEEDS_RETAKE)
            progress(100, "Please retake the video")
            logger.info(f"Analysis {analysis_id} needs a retake")
            return self._outcome(analysis_id, lifecycle, fps, frames, segmentation)

        lifecycle.advance(AnalysisState.SEGMENTED)
        progress(self.SEGMENTED, "Swing phases located")

        try:
            self._checkpoint(token)
            lifecycle.advance(AnalysisState.SCORING)
            frames_by_index = {frame.frame_index: frame for frame in frames}
            metrics = compute_metrics(
                frames_by_index,
                segmentation.events,
                fps,
                recent_stride_lengths=recent_stride_lengths,
                handedness=self.handedness,
            )
            score = self.scoring_engine.score(metrics.metrics, self.specs)
            progress(self.SCORED, "Swing scored")

            self._checkpoint(token)
        except AnalysisCancelled:
            lifecycle.advance(AnalysisState.CANCELLED)
            raise
        except Exception as e:
            lifecycle.advance(AnalysisState.ERROR)
            logger.error(f"Scoring failed for analysis {analysis_id}: {e}")
            raise

        cards = self.selector.select(score.weakest, self.card_count)
        lifecycle.advance(AnalysisState.CARDS_BUILT)
        progress(self.CARDS_BUILT, "Coaching cards ready")

        lifecycle.advance(AnalysisState.COMPLETE)
        progress(100, "Analysis complete")
        logger.info(f"Analysis {analysis_id} complete: {score.overall} ({score.label})")

        return self._outcome(analysis_id, lifecycle, fps, frames, segmentation, metrics, score, tuple(cards))

    # -------------------------------------------------------------------------
    # Private Helper Methods
    # -------------------------------------------------------------------------

    @staticmethod
    def _checkpoint(token: Optional[CancellationToken]) -> None:
        if token is not None:
            token.raise_if_cancelled()

    def _outcome(
        self,
        analysis_id: str,
        lifecycle: AttemptLifecycle,
        fps: float,
        frames: List[FrameKeypoints],
        segmentation: SegmentationResult,
        metrics=None,
        score=None,
        cards=(),
    ) -> AnalysisOutcome:
        return AnalysisOutcome(
            id=analysis_id,
            state=lifecycle.state,
            fps=fps,
            frames_analyzed=len(frames),
            handedness=self.handedness,
            segmentation=segmentation,
            metrics=metrics,
            score=score,
            cards=cards,
            frames=tuple(frames),
        )
