"""
REST API Routes

FastAPI routes for baseball/softball swing analysis.
Handles HTTP requests for video analysis, keypoint analysis and scoring.
"""

import asyncio
import logging
import os
import tempfile
from datetime import datetime
from typing import List, Mapping, Optional, Sequence

from fastapi import APIRouter, HTTPException, Request, UploadFile, File, Form

from .schemas import (
    AnalyzeFramesRequest,
    BatSpeedSchema,
    CoachingCardSchema,
    DrillSchema,
    EvaluateRequest,
    EvaluateResponse,
    HandednessEnum,
    HealthResponse,
    MetricContributionSchema,
    MetricSpecSchema,
    MetricSpecsResponse,
    MetricValueSchema,
    PhaseSchema,
    QualityFlagsSchema,
    SwingAnalysisResponse,
    SwingScoreSchema,
)
from core.config import load_drill_catalog, load_metric_specs
from core.domain import (
    AnalysisCancelled,
    AnalysisOutcome,
    CoachingCard,
    DrillReference,
    Handedness,
    MetricSpec,
    PoseDetectionFailure,
    ScoreResult,
)
from core.services import (
    BatSpeedEstimator,
    CancellationToken,
    CoachingSelector,
    PoseDetector,
    PoseModel,
    PoseStreamAdapter,
    ScoringEngine,
    SwingAnalyzer,
    build_swing_record,
    format_phases,
    measure_stride_length_cm,
)
from core.services.encouragement import build_encouragement_request
from core.services.metric_computer import METRIC_NAMES, metric_display_name, metric_unit
from core.services.pose_detector import get_video_info

# Configure logging
logger = logging.getLogger(__name__)

API_VERSION = "1.0.0"

# How often a running video analysis checks whether the client went away
DISCONNECT_POLL_SECONDS = 0.5

# nginx convention for "client closed request"
CLIENT_CLOSED_REQUEST = 499

# Create router
router = APIRouter()

# =============================================================================
# Health Check
# =============================================================================

@router.get(
    "/health",
    response_model=HealthResponse,
    tags=["Health"],
    summary="Health check endpoint"
)
async def health_check() -> HealthResponse:
    """
    Check if the API is running and its configuration loads.

    MediaPipe is only checked for installation; the model itself is
    loaded on the first video analysis.

    Returns:
        Health status and version information
    """
    mediapipe_ok = PoseDetector.is_available()
    if not mediapipe_ok:
        logger.warning("MediaPipe not available; video analysis is disabled")

    return HealthResponse(
        status="healthy",
        version=API_VERSION,
        mediapipe_available=mediapipe_ok,
        metric_count=len(load_metric_specs()),
        drill_count=len(load_drill_catalog()),
    )


# =============================================================================
# Configuration
# =============================================================================

@router.get(
    "/metrics/specs",
    response_model=MetricSpecsResponse,
    tags=["Configuration"],
    summary="Active metric specifications"
)
async def get_metric_specs() -> MetricSpecsResponse:
    """
    List the scored metrics with their target windows and weights.
    """
    specs = load_metric_specs()
    return MetricSpecsResponse(
        specs={name: _convert_spec(name, spec) for name, spec in sorted(specs.items())},
        total_weight=sum(spec.weight for spec in specs.values()),
    )


# =============================================================================
# Swing Analysis
# =============================================================================

@router.post(
    "/analysis/video",
    response_model=SwingAnalysisResponse,
    tags=["Swing Analysis"],
    summary="Analyze a swing video"
)
async def analyze_video(
    request: Request,
    video: UploadFile = File(..., description="Video file (MP4, MOV)"),
    handedness: HandednessEnum = Form(HandednessEnum.RIGHT, description="Batting side"),
    frame_skip: int = Form(1, ge=1, le=10, description="Process every Nth frame"),
    recent_stride_lengths: str = Form("", description="Comma-separated previous stride lengths (cm)"),
) -> SwingAnalysisResponse:
    """
    Analyze a swing from an uploaded video file.

    The video will be:
    1. Saved temporarily
    2. Processed frame-by-frame with MediaPipe
    3. Segmented into swing events (or rejected for a retake)
    4. Measured, scored and given coaching cards

    Args:
        video: Video file upload
        handedness: Batting side
        frame_skip: Skip frames for faster processing (1 = all frames)
        recent_stride_lengths: Athlete's previous stride lengths

    Returns:
        Complete swing analysis, or a retake request

    The analysis is cancelled when the client disconnects.
    """
    strides = parse_stride_lengths(recent_stride_lengths)

    token = CancellationToken()
    watcher = asyncio.create_task(cancel_on_disconnect(request, token))
    temp_path = None
    try:
        temp_path = write_temp_video(await video.read(), video.filename)
        outcome = await asyncio.to_thread(
            run_video_analysis,
            temp_path,
            Handedness(handedness.value),
            frame_skip,
            strides,
            token=token,
        )
        return build_analysis_response(outcome, video_ref=video.filename)

    except AnalysisCancelled:
        logger.info(f"Video analysis of {video.filename} cancelled; client disconnected")
        raise HTTPException(status_code=CLIENT_CLOSED_REQUEST, detail="Analysis cancelled")

    except PoseDetectionFailure as e:
        logger.error(f"Video analysis failed: {e}")
        raise HTTPException(status_code=502, detail={"error": str(e), "retryable": e.retryable})

    except Exception as e:
        logger.exception(f"Video analysis failed: {e}")
        raise HTTPException(status_code=500, detail=str(e))

    finally:
        watcher.cancel()
        # Clean up temp file
        if temp_path and os.path.exists(temp_path):
            os.unlink(temp_path)


@router.post(
    "/analysis/frames",
    response_model=SwingAnalysisResponse,
    tags=["Swing Analysis"],
    summary="Analyze pre-detected keypoint frames"
)
async def analyze_frames(request: AnalyzeFramesRequest) -> SwingAnalysisResponse:
    """
    Analyze a swing from keypoints the client already detected.

    Frames may use any common keypoint naming; they are normalized
    before segmentation. Frames whose timestamps do not increase are
    dropped.
    """
    try:
        outcome = await asyncio.to_thread(
            run_frames_analysis,
            [(frame.frame_index, frame.timestamp_ms, frame.people) for frame in request.frames],
            request.fps,
            Handedness(request.handedness.value),
            request.recent_stride_lengths,
        )
    except Exception as e:
        logger.exception(f"Keypoint analysis failed: {e}")
        raise HTTPException(status_code=500, detail=str(e))

    return build_analysis_response(outcome)


# =============================================================================
# Scoring
# =============================================================================

@router.post(
    "/scoring/evaluate",
    response_model=EvaluateResponse,
    tags=["Scoring"],
    summary="Score metric values directly"
)
async def evaluate_metrics(request: EvaluateRequest) -> EvaluateResponse:
    """
    Score a set of metric values and pick coaching cards.

    Useful for re-scoring stored swings after the specifications change.
    Metrics without a specification are ignored; null values are absent.
    """
    specs = load_metric_specs()
    score = ScoringEngine().score(request.metrics, specs)
    cards = CoachingSelector(load_drill_catalog()).select(score.weakest, request.card_count)
    return EvaluateResponse(
        score=convert_score(score),
        cards=convert_cards(cards),
    )


# =============================================================================
# Analysis Runners
# =============================================================================

def run_video_analysis(
    video_path: str,
    handedness: Handedness,
    frame_skip: int,
    recent_stride_lengths: Sequence[float],
    pose_model: Optional[PoseModel] = None,
    token: Optional[CancellationToken] = None,
    progress=None,
) -> AnalysisOutcome:
    """
    Analyze a video file; runs on a worker thread.

    Without a pose_model a PoseDetector is created and closed here.
    The video is opened first so an unreadable upload fails before the
    model is loaded.
    """
    get_video_info(video_path)
    analyzer = SwingAnalyzer(handedness=handedness)
    kwargs = dict(
        frame_skip=frame_skip,
        recent_stride_lengths=recent_stride_lengths,
        token=token,
        progress=progress,
    )
    if pose_model is not None:
        pose_model.initialize()
        return analyzer.analyze_video(video_path, pose_model, **kwargs)
    with PoseDetector() as detector:
        return analyzer.analyze_video(video_path, detector, **kwargs)


def run_frames_analysis(
    raw_frames: Sequence[tuple],
    fps: float,
    handedness: Handedness,
    recent_stride_lengths: Sequence[float],
    token: Optional[CancellationToken] = None,
    progress=None,
) -> AnalysisOutcome:
    """Normalize raw (frame_index, timestamp_ms, people) frames and analyze them."""
    frames = PoseStreamAdapter().normalize_stream(raw_frames)
    analyzer = SwingAnalyzer(handedness=handedness)
    return analyzer.analyze_frames(
        frames,
        fps,
        recent_stride_lengths=recent_stride_lengths,
        token=token,
        progress=progress,
    )


async def cancel_on_disconnect(
    request: Request,
    token: CancellationToken,
    poll_seconds: float = DISCONNECT_POLL_SECONDS,
) -> None:
    """Cancel the token once the HTTP client disconnects."""
    while not token.cancelled:
        if await request.is_disconnected():
            logger.info("Client disconnected; cancelling analysis")
            token.cancel()
            return
        await asyncio.sleep(poll_seconds)


def write_temp_video(content: bytes, filename: Optional[str]) -> str:
    """Write an uploaded video to a temp file with the same extension."""
    suffix = os.path.splitext(filename or "")[1] or ".mp4"
    with tempfile.NamedTemporaryFile(delete=False, suffix=suffix) as temp_file:
        temp_file.write(content)
        return temp_file.name


def parse_stride_lengths(value: str) -> List[float]:
    """Parse a comma-separated list of stride lengths; 422 on junk."""
    try:
        return [float(part) for part in value.split(",") if part.strip()]
    except ValueError:
        raise HTTPException(status_code=422, detail=f"Invalid stride lengths: {value!r}")


# =============================================================================
# Helper Functions
# =============================================================================

def build_analysis_response(
    outcome: AnalysisOutcome,
    specs: Optional[Mapping[str, MetricSpec]] = None,
    video_ref: Optional[str] = None,
) -> SwingAnalysisResponse:
    """
    Convert a domain AnalysisOutcome to the API response schema.

    Scored swings also carry swing_record, the record a client hands to
    its store (see core.services.persistence).
    """
    specs = specs if specs is not None else load_metric_specs()
    frames_by_index = {frame.frame_index: frame for frame in outcome.frames}

    response = SwingAnalysisResponse(
        id=outcome.id,
        timestamp=datetime.now(),
        state=outcome.state.value,
        fps=outcome.fps,
        frames_analyzed=outcome.frames_analyzed,
        average_confidence=round(outcome.segmentation.average_confidence, 3),
        needs_retake=outcome.needs_retake,
        retake_reasons=list(outcome.retake_reasons),
        events=outcome.events.as_dict(),
        phases=[PhaseSchema(**phase) for phase in format_phases(outcome.events, frames_by_index)],
        summary=_summary(outcome),
    )
    if outcome.needs_retake or outcome.metrics is None or outcome.score is None:
        return response

    normalized = outcome.score.per_metric_normalized
    names = list(METRIC_NAMES) + sorted(set(outcome.metrics.metrics) - set(METRIC_NAMES))
    response.metrics = [
        MetricValueSchema(
            name=name,
            display_name=metric_display_name(name),
            value=_rounded(outcome.metrics.metrics.get(name)),
            unit=metric_unit(name),
            normalized=_rounded(normalized.get(name), 3),
            target=specs[name].target if name in specs else None,
        )
        for name in names
        if name in outcome.metrics.metrics
    ]
    response.quality_flags = QualityFlagsSchema(
        low_confidence=outcome.metrics.quality_flags.low_confidence,
        missing_events=list(outcome.metrics.quality_flags.missing_events),
    )
    response.pixels_per_cm = _rounded(outcome.metrics.pixels_per_cm, 3)
    response.score = convert_score(outcome.score)
    response.cards = convert_cards(outcome.cards)

    bat_speed = _estimate_bat_speed(outcome)
    if bat_speed is not None:
        response.bat_speed = BatSpeedSchema(
            peak_speed_mph=round(bat_speed.peak_speed_mph, 1),
            avg_speed_mph=round(bat_speed.avg_speed_mph, 1),
            peak_wrist_speed_mph=round(bat_speed.peak_wrist_speed_mph, 1),
            swing_duration_ms=round(bat_speed.swing_duration_ms, 1),
            acceleration_phase_ms=round(bat_speed.acceleration_phase_ms, 1),
            level=bat_speed.level.value,
            level_description=bat_speed.level_description,
            tips=bat_speed.tips,
        )

    if not outcome.score.insufficient_data:
        response.encouragement_request = build_encouragement_request(
            outcome.metrics,
            outcome.score,
            specs,
            player_level=bat_speed.level if bat_speed else None,
        ).to_dict()

    response.swing_record = build_swing_record(
        outcome,
        video_ref=video_ref,
        stride_length_cm=_rounded(
            measure_stride_length_cm(frames_by_index, outcome.events, outcome.handedness)
        ),
    ).to_dict()

    return response


def _estimate_bat_speed(outcome: AnalysisOutcome):
    """Bat speed report over launch..contact, the window the bat_speed_mph metric uses."""
    frames = list(outcome.frames)
    launch, contact = outcome.events.launch, outcome.events.contact
    if launch is not None and contact is not None:
        frames = [frame for frame in frames if launch <= frame.frame_index <= contact]
    estimator = BatSpeedEstimator(handedness=outcome.handedness)
    return estimator.estimate(frames, outcome.metrics.pixels_per_cm)


def convert_score(score: ScoreResult) -> SwingScoreSchema:
    shares = ScoringEngine.weighted_shares(score)
    return SwingScoreSchema(
        overall=score.overall,
        label=score.label,
        insufficient_data=score.insufficient_data,
        per_metric_normalized={name: round(value, 3) for name, value in score.per_metric_normalized.items()},
        weakest=list(score.weakest),
        contributions=[
            MetricContributionSchema(
                metric=c.metric,
                normalized=c.normalized,
                weight=c.weight,
                weighted_share=round(shares.get(c.metric, 0.0), 2),
            )
            for c in score.contributions
        ],
    )


def convert_cards(cards: Sequence[CoachingCard]) -> List[CoachingCardSchema]:
    return [
        CoachingCardSchema(
            metric=card.metric,
            priority=priority,
            cue=card.cue,
            why=card.why,
            drill=_convert_drill(card.drill),
        )
        for priority, card in enumerate(cards, start=1)
    ]


def _convert_drill(drill: Optional[DrillReference]) -> Optional[DrillSchema]:
    if drill is None:
        return None
    return DrillSchema(
        id=drill.drill_id,
        name=drill.name,
        goal_metric=drill.goal_metric,
        purpose=drill.purpose,
        setup=list(drill.setup),
        steps=list(drill.instructions),
        reps=drill.reps,
        focus_cues=list(drill.focus_cues),
        equipment=list(drill.equipment),
    )


def _convert_spec(name: str, spec: MetricSpec) -> MetricSpecSchema:
    return MetricSpecSchema(
        target=spec.target,
        weight=spec.weight,
        invert=spec.invert,
        abs_window=spec.abs_window,
        shape=spec.shape.value,
        unit=metric_unit(name),
        display_name=metric_display_name(name),
    )


def _summary(outcome: AnalysisOutcome) -> str:
    if outcome.needs_retake:
        return "We couldn't track this swing well enough to score it. " + " ".join(outcome.retake_reasons)
    score = outcome.score
    if score is None:
        return f"Analysis ended in state {outcome.state.value}."
    if score.insufficient_data:
        return "Not enough of the swing was measurable to give a score."
    summary = f"Your swing scored {score.overall}/100 - {score.label}."
    if outcome.primary_card:
        summary += f" Focus on: {outcome.primary_card.cue}"
    return summary


def _rounded(value: Optional[float], digits: int = 2) -> Optional[float]:
    return round(value, digits) if value is not None else None
