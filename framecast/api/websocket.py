"""WebSocket support for real-time render progress notifications.

This module provides:
- WebSocketManager: Manages WebSocket connections per render job
- RenderProgressNotifier: High-level API for sending progress updates
- Message creation helpers: Standardized message formats
"""

import asyncio
import logging
from typing import Any, Callable, Optional

from fastapi import WebSocket

from framecast.schemas.envelope import ErrorInfo

logger = logging.getLogger(__name__)


class WebSocketManager:
    """Manages WebSocket connections for render progress updates.

    Supports multiple clients watching the same render job.
    """

    def __init__(self):
        # job_id -> list of connected websockets
        self._connections: dict[str, list[WebSocket]] = {}

    async def connect(self, websocket: WebSocket, job_id: str) -> None:
        """Accept and register a WebSocket connection for a job."""
        await websocket.accept()
        self._connections.setdefault(job_id, []).append(websocket)

    def disconnect(self, websocket: WebSocket, job_id: str) -> None:
        """Remove a WebSocket connection."""
        if job_id in self._connections:
            if websocket in self._connections[job_id]:
                self._connections[job_id].remove(websocket)
            # Clean up empty lists
            if not self._connections[job_id]:
                del self._connections[job_id]

    async def broadcast(self, job_id: str, message: dict[str, Any]) -> None:
        """Broadcast a message to all clients watching a job."""
        if job_id not in self._connections:
            return

        disconnected = []
        for websocket in list(self._connections[job_id]):
            try:
                await websocket.send_json(message)
            except Exception as e:
                logger.debug(f"[WS] Dropping client of job {job_id}: {e}")
                disconnected.append(websocket)

        for ws in disconnected:
            self.disconnect(ws, job_id)

    def get_connection_count(self, job_id: str) -> int:
        """Get the number of connected clients for a job."""
        return len(self._connections.get(job_id, []))


class RenderProgressNotifier:
    """High-level API for sending render progress notifications."""

    def __init__(self, manager: WebSocketManager):
        self._manager = manager

    async def notify_progress(
        self,
        job_id: str,
        percent: float,
        status: str,
        current_step: Optional[str] = None,
        elapsed_ms: int = 0,
    ) -> None:
        """Send a progress update to all connected clients."""
        message = create_progress_message(
            job_id=job_id,
            status=status,
            percent=percent,
            current_step=current_step,
            elapsed_ms=elapsed_ms,
        )
        await self._manager.broadcast(job_id, message)

    async def notify_complete(self, job_id: str, output_path: str, duration_ms: int = 0) -> None:
        """Send a completion notification to all connected clients."""
        message = create_complete_message(job_id=job_id, output_path=output_path, duration_ms=duration_ms)
        await self._manager.broadcast(job_id, message)

    async def notify_error(self, job_id: str, error: ErrorInfo) -> None:
        """Send an error notification to all connected clients."""
        await self._manager.broadcast(job_id, create_error_message(job_id=job_id, error=error))

    async def notify_cancelled(self, job_id: str) -> None:
        """Send a cancellation notification to all connected clients."""
        message = {
            "type": "cancelled",
            "job_id": job_id,
            "status": "cancelled",
        }
        await self._manager.broadcast(job_id, message)

    def pipeline_callback(self, job_id: str) -> Callable[[int, str], None]:
        """Progress callback for ``RenderPipeline.set_progress_callback``.

        Must be created and called on the event loop thread.
        """
        loop = asyncio.get_running_loop()

        def callback(percent: int, stage: str) -> None:
            loop.create_task(self.notify_progress(job_id, percent, "processing", stage))

        return callback


def create_progress_message(
    job_id: str,
    status: str,
    percent: float,
    current_step: Optional[str] = None,
    elapsed_ms: int = 0,
) -> dict[str, Any]:
    """Create a standardized progress message."""
    return {
        "type": "progress",
        "job_id": job_id,
        "status": status,
        "percent": percent,
        "current_step": current_step,
        "elapsed_ms": elapsed_ms,
    }


def create_complete_message(job_id: str, output_path: str, duration_ms: int = 0) -> dict[str, Any]:
    """Create a standardized completion message."""
    return {
        "type": "complete",
        "job_id": job_id,
        "status": "completed",
        "percent": 100.0,
        "output_path": output_path,
        "duration_ms": duration_ms,
    }


def create_error_message(job_id: str, error: ErrorInfo) -> dict[str, Any]:
    """Create a standardized error message."""
    return {
        "type": "error",
        "job_id": job_id,
        "status": "failed",
        "error": error.model_dump(),
    }


# Global WebSocket manager instance
websocket_manager = WebSocketManager()
progress_notifier = RenderProgressNotifier(websocket_manager)
