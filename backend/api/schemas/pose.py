"""
Pose API Schemas

Pydantic models for keypoint input and the WebSocket protocol.
These define the JSON structure for communication with frontend.
"""

from pydantic import BaseModel, Field
from typing import Any, Optional, List
from enum import Enum


class KeypointSchema(BaseModel):
    """
    Single canonical keypoint in API response.

    Coordinates are in the pixel space of the source video.
    """
    name: str = Field(..., description="Canonical body part name (e.g., 'left_shoulder')")
    x: float = Field(..., description="Horizontal position in pixels")
    y: float = Field(..., description="Vertical position in pixels (down is positive)")
    confidence: float = Field(..., ge=0.0, le=1.0, description="Detection confidence")

    class Config:
        json_schema_extra = {
            "example": {
                "name": "left_shoulder",
                "x": 412.5,
                "y": 188.0,
                "confidence": 0.94
            }
        }


class RawFrameSchema(BaseModel):
    """
    Detector output for one video frame, as produced by any pose model.

    `people` is passed through unchanged to the pose stream adapter, which
    accepts named keypoint records (any common naming style), name -> record
    mappings, or positional 33/17 landmark lists.
    """
    frame_index: int = Field(..., ge=0, description="Frame number in the source video")
    timestamp_ms: float = Field(..., ge=0, description="Video timestamp in milliseconds")
    people: List[Any] = Field(default_factory=list, description="Detected people (empty if nobody found)")

    class Config:
        json_schema_extra = {
            "example": {
                "frame_index": 12,
                "timestamp_ms": 200.0,
                "people": [
                    {
                        "score": 0.91,
                        "keypoints": [
                            {"name": "leftShoulder", "x": 412.5, "y": 188.0, "score": 0.94},
                            {"name": "rightShoulder", "x": 371.0, "y": 192.3, "score": 0.92}
                        ]
                    }
                ]
            }
        }


# =============================================================================
# WebSocket Message Schemas
# =============================================================================

class WebSocketMessageType(str, Enum):
    """Types of WebSocket messages."""
    # Client -> Server
    START_ANALYSIS = "start_analysis"  # Analyze a video or keypoint frames
    CANCEL = "cancel"                  # Cancel the running analysis
    END_SESSION = "end_session"        # End analysis session

    # Server -> Client
    SESSION_STARTED = "session_started"
    PROGRESS = "progress"              # (percent, message) while analyzing
    NEEDS_RETAKE = "needs_retake"      # Tracking too poor to score
    ANALYSIS_RESULT = "analysis_result"
    CANCELLED = "cancelled"
    ERROR = "error"                    # Error message
    SESSION_ENDED = "session_ended"


class WebSocketMessage(BaseModel):
    """
    Base WebSocket message structure.

    All WebSocket communication uses this format.
    """
    type: WebSocketMessageType = Field(..., description="Message type")
    data: dict = Field(default_factory=dict, description="Message payload")
    timestamp: int = Field(..., description="Unix timestamp in milliseconds")

    class Config:
        json_schema_extra = {
            "example": {
                "type": "progress",
                "data": {"task_id": "5f0c...", "percent": 42, "message": "Processed frame 50/120"},
                "timestamp": 1699900000000
            }
        }


class StartAnalysisMessage(BaseModel):
    """
    Payload of a start_analysis message.

    Exactly one of `video_base64` or `frames` must be given. Starting a new
    analysis cancels the one already running on this connection.
    """
    video_base64: Optional[str] = Field(None, description="Base64 encoded video file")
    filename: str = Field("swing.mp4", description="Original file name (for the extension)")
    frame_skip: int = Field(1, ge=1, le=10, description="Process every Nth frame")
    frames: Optional[List[RawFrameSchema]] = Field(None, description="Pre-detected keypoint frames")
    fps: Optional[float] = Field(None, gt=0, description="Frame rate of the keypoint frames")
    handedness: str = Field("right", description="Batting side: right or left")
    recent_stride_lengths: List[float] = Field(default_factory=list, description="Previous stride lengths (cm)")

    class Config:
        json_schema_extra = {
            "example": {
                "frames": [{"frame_index": 0, "timestamp_ms": 0.0, "people": []}],
                "fps": 60.0,
                "handedness": "right",
                "recent_stride_lengths": [61.0, 63.5, 60.2]
            }
        }


class ProgressMessage(BaseModel):
    """Progress of the running analysis. Percent never decreases."""
    task_id: str
    percent: int = Field(..., ge=0, le=100)
    message: str
