"""
WebSocket Handler

Swing analysis with live progress via WebSocket connection.
Each connection is one capture session: at most one analysis runs at a
time, and starting a new one cancels the previous attempt.
"""

import json
import time
import base64
import binascii
import logging
import asyncio
import os
from typing import Optional
from fastapi import WebSocket, WebSocketDisconnect
from pydantic import ValidationError

from .routes import (
    build_analysis_response,
    run_frames_analysis,
    run_video_analysis,
    write_temp_video,
)
from .schemas import StartAnalysisMessage, WebSocketMessageType
from core.domain import Handedness, SwingAnalysisError
from core.services import AnalysisSession, AnalysisTask, PoseDetector

# Configure logging
logger = logging.getLogger(__name__)


class ConnectionManager:
    """
    Manages WebSocket connections.

    Every connection owns an AnalysisSession and, once a video is sent,
    a dedicated pose detector. Both are released on disconnect.
    """

    def __init__(self):
        self.active_connections: list[WebSocket] = []
        self.sessions: dict[WebSocket, AnalysisSession] = {}
        self.pose_detectors: dict[WebSocket, PoseDetector] = {}
        self.runners: dict[WebSocket, set[asyncio.Task]] = {}

    async def connect(self, websocket: WebSocket) -> None:
        """Accept new WebSocket connection."""
        await websocket.accept()
        self.active_connections.append(websocket)
        self.sessions[websocket] = AnalysisSession()
        self.runners[websocket] = set()

        logger.info(f"New WebSocket connection. Total: {len(self.active_connections)}")

    async def disconnect(self, websocket: WebSocket) -> None:
        """Handle WebSocket disconnection."""
        if websocket in self.active_connections:
            self.active_connections.remove(websocket)

        # Stop the running analysis before the detector goes away
        session = self.sessions.pop(websocket, None)
        if session is not None:
            await session.close()
        for runner in self.runners.pop(websocket, set()):
            runner.cancel()

        # Clean up pose detector
        detector = self.pose_detectors.pop(websocket, None)
        if detector is not None:
            detector.close()

        logger.info(f"WebSocket disconnected. Remaining: {len(self.active_connections)}")

    def get_session(self, websocket: WebSocket) -> AnalysisSession:
        return self.sessions[websocket]

    def get_detector(self, websocket: WebSocket) -> PoseDetector:
        """Pose detector for a connection; the model loads on first use."""
        detector = self.pose_detectors.get(websocket)
        if detector is None:
            detector = PoseDetector(
                model_complexity=1,
                min_detection_confidence=0.5,
                min_tracking_confidence=0.5,
            )
            self.pose_detectors[websocket] = detector
        return detector

    def track(self, websocket: WebSocket, runner: asyncio.Task) -> None:
        runners = self.runners.setdefault(websocket, set())
        runners.add(runner)
        runner.add_done_callback(runners.discard)

    async def wait_for_runners(self, websocket: WebSocket) -> None:
        runners = list(self.runners.get(websocket, ()))
        if runners:
            await asyncio.gather(*runners, return_exceptions=True)

    async def send_json(self, websocket: WebSocket, data: dict) -> None:
        """Send JSON data to a specific connection."""
        try:
            await websocket.send_json(data)
        except Exception as e:
            logger.error(f"Failed to send WebSocket message: {e}")

    async def send(self, websocket: WebSocket, msg_type: WebSocketMessageType, data: dict) -> None:
        await self.send_json(websocket, {
            "type": msg_type.value,
            "data": data,
            "timestamp": int(time.time() * 1000)
        })

    async def send_error(self, websocket: WebSocket, error: str, retryable: bool = False, **extra) -> None:
        await self.send(websocket, WebSocketMessageType.ERROR, {"error": error, "retryable": retryable, **extra})


# Global connection manager
manager = ConnectionManager()


async def websocket_endpoint(websocket: WebSocket) -> None:
    """
    WebSocket endpoint for swing analysis.

    Protocol:
    1. Client connects and receives session_started
    2. Client sends start_analysis with a video or keypoint frames
    3. Server streams progress, then one of needs_retake,
       analysis_result, cancelled or error
    4. Client may send cancel at any time, or start_analysis again to
       replace the running attempt
    5. Client sends end_session (or disconnects) when done

    Message format (client -> server):
    {
        "type": "start_analysis",
        "data": {
            "frames": [{"frame_index": 0, "timestamp_ms": 0.0, "people": [...]}],
            "fps": 60.0,
            "handedness": "right"
        },
        "timestamp": 1704067200000
    }

    Message format (server -> client):
    {
        "type": "progress",
        "data": {"task_id": "...", "percent": 42, "message": "Processed frame 50/120"},
        "timestamp": 1704067200025
    }
    """
    await manager.connect(websocket)

    try:
        # Send session started message
        await manager.send(websocket, WebSocketMessageType.SESSION_STARTED, {
            "message": "Connected to SwingSense swing analysis"
        })

        # Main message loop
        while True:
            try:
                data = await websocket.receive_json()

                msg_type = data.get("type")

                if msg_type == WebSocketMessageType.START_ANALYSIS.value:
                    await handle_start_analysis(websocket, data)

                elif msg_type == WebSocketMessageType.CANCEL.value:
                    await handle_cancel(websocket)

                elif msg_type == WebSocketMessageType.END_SESSION.value:
                    await manager.get_session(websocket).cancel()
                    await manager.wait_for_runners(websocket)
                    await manager.send(websocket, WebSocketMessageType.SESSION_ENDED, {
                        "message": "Session ended"
                    })
                    break

                else:
                    await manager.send_error(websocket, f"Unknown message type: {msg_type}")

            except json.JSONDecodeError:
                await manager.send_error(websocket, "Invalid JSON")

    except WebSocketDisconnect:
        logger.info("Client disconnected")
    except Exception as e:
        logger.error(f"WebSocket error: {e}")
    finally:
        await manager.disconnect(websocket)


async def handle_start_analysis(websocket: WebSocket, message: dict) -> None:
    """
    Validate a start_analysis request and start it in the session.

    The previous analysis on this connection, if any, is cancelled and
    its results are discarded.
    """
    try:
        payload = StartAnalysisMessage.model_validate(message.get("data") or {})
        handedness = Handedness(payload.handedness)
    except (ValidationError, ValueError) as e:
        await manager.send_error(websocket, f"Invalid start_analysis payload: {e}")
        return

    if (payload.video_base64 is None) == (payload.frames is None):
        await manager.send_error(websocket, "Provide exactly one of video_base64 or frames")
        return

    strides = list(payload.recent_stride_lengths)
    temp_path: Optional[str] = None

    if payload.frames is not None:
        if payload.fps is None:
            await manager.send_error(websocket, "fps is required when sending frames")
            return
        raw_frames = [(frame.frame_index, frame.timestamp_ms, frame.people) for frame in payload.frames]
        fps = payload.fps

        def work(token, progress):
            return run_frames_analysis(raw_frames, fps, handedness, strides, token=token, progress=progress)
    else:
        try:
            content = base64.b64decode(payload.video_base64, validate=True)
        except (binascii.Error, ValueError):
            await manager.send_error(websocket, "video_base64 is not valid base64")
            return
        temp_path = write_temp_video(content, payload.filename)
        detector = manager.get_detector(websocket)
        video_path = temp_path

        def work(token, progress):
            return run_video_analysis(
                video_path,
                handedness,
                payload.frame_skip,
                strides,
                pose_model=detector,
                token=token,
                progress=progress,
            )

    session = manager.get_session(websocket)
    task = await session.start(work)
    logger.info(f"Started analysis task {task.id}")

    runner = asyncio.create_task(stream_analysis(websocket, session, task, temp_path))
    manager.track(websocket, runner)


async def handle_cancel(websocket: WebSocket) -> None:
    session = manager.get_session(websocket)
    task = session.current
    if task is None or task.done:
        await manager.send_error(websocket, "No analysis is running")
        return
    await session.cancel()


async def stream_analysis(
    websocket: WebSocket,
    session: AnalysisSession,
    task: AnalysisTask,
    temp_path: Optional[str] = None,
) -> None:
    """
    Forward progress of one task, then its final message.

    Progress of a superseded task is not forwarded.
    """
    try:
        async for update in task.progress_updates():
            if session.is_current(task):
                await manager.send(websocket, WebSocketMessageType.PROGRESS, {
                    "task_id": task.id,
                    "percent": update.percent,
                    "message": update.message,
                })

        try:
            outcome = await session.result(task)
        except SwingAnalysisError as e:
            logger.error(f"Analysis task {task.id} failed: {e}")
            await manager.send_error(websocket, str(e), e.retryable, task_id=task.id)
            return
        except Exception as e:
            logger.exception(f"Analysis task {task.id} failed: {e}")
            await manager.send_error(websocket, str(e), task_id=task.id)
            return

        if outcome is None:
            await manager.send(websocket, WebSocketMessageType.CANCELLED, {
                "task_id": task.id,
                "superseded": not session.is_current(task),
            })
            return

        response = await asyncio.to_thread(build_analysis_response, outcome)
        msg_type = (
            WebSocketMessageType.NEEDS_RETAKE if outcome.needs_retake
            else WebSocketMessageType.ANALYSIS_RESULT
        )
        await manager.send(websocket, msg_type, {
            "task_id": task.id,
            "result": response.model_dump(mode="json"),
        })

    finally:
        # Clean up temp file
        if temp_path and os.path.exists(temp_path):
            os.unlink(temp_path)
