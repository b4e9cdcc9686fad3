"""
Pose Detector Service

Wrapper around the MediaPipe Pose Landmarker for detecting body landmarks
in video frames, plus the OpenCV helpers that decode a swing video into
sampled frames.

The detector is an explicit resource: the caller creates it, initializes
it, hands it to the pipeline and closes it. Nothing here is a module-level
singleton.
"""

import importlib.util
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Generator, List, Optional, Tuple

import numpy as np

from ..domain.errors import PoseDetectionFailure
from .pose_stream import MEDIAPIPE_LANDMARKS

logger = logging.getLogger(__name__)


MODEL_URLS = {
    0: "https://storage.googleapis.com/mediapipe-models/pose_landmarker/pose_landmarker_lite/float16/1/pose_landmarker_lite.task",
    1: "https://storage.googleapis.com/mediapipe-models/pose_landmarker/pose_landmarker_full/float16/1/pose_landmarker_full.task",
    2: "https://storage.googleapis.com/mediapipe-models/pose_landmarker/pose_landmarker_heavy/float16/1/pose_landmarker_heavy.task",
}

MODEL_CACHE_DIR = Path.home() / ".cache" / "mediapipe"


class PoseDetector:
    """
    Detects human body pose using the MediaPipe Pose Landmarker.

    detect() returns one list of landmark records per detected person,
    with pixel coordinates and MediaPipe's landmark names. The pose stream
    adapter turns these into canonical keypoints.

    Usage:
        detector = PoseDetector()
        detector.initialize()
        people = detector.detect(image)
        detector.close()

    Or use as context manager:
        with PoseDetector() as detector:
            people = detector.detect(image)
    """

    def __init__(
        self,
        model_complexity: int = 1,
        min_detection_confidence: float = 0.5,
        min_tracking_confidence: float = 0.5,
        num_poses: int = 1,
        model_path: Optional[str] = None,
    ):
        """
        Configure the pose detector. No model is loaded until initialize().

        Args:
            model_complexity: 0 (lite), 1 (full) or 2 (heavy).
                             Higher = more accurate but slower.
            min_detection_confidence: Minimum confidence for person detection.
            min_tracking_confidence: Minimum confidence for landmark tracking.
            num_poses: Maximum number of people to detect per frame.
            model_path: Local .task model file; downloaded and cached if omitted.
        """
        self.model_complexity = model_complexity
        self.min_detection_confidence = min_detection_confidence
        self.min_tracking_confidence = min_tracking_confidence
        self.num_poses = num_poses
        self.model_path = model_path
        self._landmarker: Any = None
        self._mp: Any = None

    @staticmethod
    def is_available() -> bool:
        """Whether the mediapipe package can be imported."""
        return importlib.util.find_spec("mediapipe") is not None

    @property
    def is_initialized(self) -> bool:
        return self._landmarker is not None

    def __enter__(self) -> "PoseDetector":
        """Context manager entry - loads the model."""
        self.initialize()
        return self

    def __exit__(
        self,
        exc_type: Optional[type],
        exc_val: Optional[BaseException],
        exc_tb: Optional[Any]
    ) -> None:
        """Context manager exit - cleanup resources."""
        self.close()

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def initialize(self) -> None:
        """
        Load the MediaPipe Pose Landmarker.

        Raises:
            PoseDetectionFailure: mediapipe is missing or the model failed to load
        """
        if self._landmarker is not None:
            return

        try:
            import mediapipe as mp
            from mediapipe.tasks import python
            from mediapipe.tasks.python import vision
        except ImportError as e:
            raise PoseDetectionFailure(
                f"mediapipe package error: {e}. Install with: pip install mediapipe"
            ) from e

        try:
            base_options = python.BaseOptions(model_asset_path=self._resolve_model_path())
            options = vision.PoseLandmarkerOptions(
                base_options=base_options,
                running_mode=vision.RunningMode.IMAGE,
                num_poses=self.num_poses,
                min_pose_detection_confidence=self.min_detection_confidence,
                min_tracking_confidence=self.min_tracking_confidence,
                output_segmentation_masks=False,
            )
            self._landmarker = vision.PoseLandmarker.create_from_options(options)
            self._mp = mp
        except Exception as e:
            logger.error(f"Failed to initialize MediaPipe: {e}")
            raise PoseDetectionFailure(f"Pose model failed to initialize: {e}") from e

        logger.info("MediaPipe Pose Landmarker initialized")

    def close(self) -> None:
        """Release MediaPipe resources. Safe to call more than once."""
        if self._landmarker is not None:
            self._landmarker.close()
            self._landmarker = None
            logger.debug("MediaPipe Pose Landmarker closed")

    # -------------------------------------------------------------------------
    # Core Detection Methods
    # -------------------------------------------------------------------------

    def detect(self, image: np.ndarray) -> List[List[dict]]:
        """
        Detect poses in a single BGR image (OpenCV format).

        Returns:
            One list of landmark dicts (name, x, y, visibility) per detected
            person; an empty list if nobody was found.
        """
        if self._landmarker is None:
            raise PoseDetectionFailure("Pose detector used before initialize()")

        import cv2

        # MediaPipe expects RGB
        if image.ndim == 3 and image.shape[2] == 3:
            image_rgb = cv2.cvtColor(image, cv2.COLOR_BGR2RGB)
        else:
            image_rgb = image

        mp_image = self._mp.Image(image_format=self._mp.ImageFormat.SRGB, data=image_rgb)
        result = self._landmarker.detect(mp_image)

        h, w = image.shape[:2]
        people = []
        for landmarks in result.pose_landmarks or []:
            people.append([
                {
                    "name": MEDIAPIPE_LANDMARKS[i],
                    "x": lm.x * w,  # Convert to pixel coordinates
                    "y": lm.y * h,
                    "visibility": getattr(lm, "visibility", None),
                }
                for i, lm in enumerate(landmarks)
                if i < len(MEDIAPIPE_LANDMARKS)
            ])
        return people

    # -------------------------------------------------------------------------
    # Private Helper Methods
    # -------------------------------------------------------------------------

    def _resolve_model_path(self) -> str:
        """Return the model file path, downloading it into the cache if needed."""
        if self.model_path:
            return self.model_path

        import urllib.request

        url = MODEL_URLS.get(self.model_complexity, MODEL_URLS[1])
        MODEL_CACHE_DIR.mkdir(parents=True, exist_ok=True)
        path = MODEL_CACHE_DIR / url.rsplit("/", 1)[-1]

        if not path.exists():
            logger.info(f"Downloading MediaPipe model from {url}...")
            urllib.request.urlretrieve(url, path)
            logger.info(f"Model downloaded to {path}")

        return str(path)


# =============================================================================
# Video decoding
# =============================================================================

@dataclass(frozen=True)
class VideoInfo:
    fps: float
    total_frames: int
    width: int
    height: int

    @property
    def duration_ms(self) -> float:
        return (self.total_frames / self.fps) * 1000 if self.fps > 0 else 0.0


def get_video_info(video_path: str) -> VideoInfo:
    """Read frame rate, frame count and dimensions of a video file."""
    import cv2

    cap = cv2.VideoCapture(video_path)
    if not cap.isOpened():
        raise PoseDetectionFailure(f"Could not open video: {video_path}")
    try:
        return VideoInfo(
            fps=float(cap.get(cv2.CAP_PROP_FPS) or 0.0),
            total_frames=int(cap.get(cv2.CAP_PROP_FRAME_COUNT)),
            width=int(cap.get(cv2.CAP_PROP_FRAME_WIDTH)),
            height=int(cap.get(cv2.CAP_PROP_FRAME_HEIGHT)),
        )
    finally:
        cap.release()


def iter_video_frames(
    video_path: str,
    frame_skip: int = 1,
    fps: Optional[float] = None,
) -> Generator[Tuple[int, float, np.ndarray], None, None]:
    """
    Decode a video and yield every Nth frame.

    Args:
        video_path: Path to video file
        frame_skip: Process every Nth frame (1 = all, 2 = every other, etc.)
        fps: Frame rate used for timestamps; read from the file if omitted

    Yields:
        (frame_index, timestamp_ms, BGR image) for each sampled frame
    """
    import cv2

    cap = cv2.VideoCapture(video_path)
    if not cap.isOpened():
        raise PoseDetectionFailure(f"Could not open video: {video_path}")

    fps = fps or cap.get(cv2.CAP_PROP_FPS)
    frame_index = 0

    try:
        while True:
            ret, frame = cap.read()
            if not ret:
                break

            if frame_index % frame_skip == 0:
                timestamp_ms = (frame_index / fps) * 1000.0 if fps > 0 else float(frame_index)
                yield frame_index, timestamp_ms, frame

            frame_index += 1
    finally:
        cap.release()
