"""
Usage Tracking API Routes

Endpoints the player calls when a page is visited, a track is played or a
track is downloaded.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel

from jukebox.services.analytics_engine import get_analytics_engine
from jukebox.services.analytics_store import get_analytics_store
from jukebox.services.errors import InvalidInput, NotReady

router = APIRouter()
logger = logging.getLogger(__name__)


class TrackRequest(BaseModel):
    # Left untyped so a missing or non-string filename is a 400, not a 422
    filename: Any = None


def _with_warning(response: dict[str, Any]) -> dict[str, Any]:
    error = get_analytics_store().persistence_error
    if error:
        response["warning"] = f"Recorded in memory but not yet saved: {error}"
    return response


@router.post("/trackvisit")
async def track_visit() -> dict[str, Any]:
    """
    Count a page visit.

    Called once when the player page loads.
    """
    engine = get_analytics_engine()

    try:
        total = await asyncio.to_thread(engine.record_visit)
        return _with_warning({"message": "Visit tracked.", "totalVisits": total})
    except NotReady as e:
        raise HTTPException(status_code=503, detail=str(e))
    except Exception as e:
        logger.exception("Failed to track visit")
        raise HTTPException(status_code=500, detail=f"Track visit failed: {e}")


@router.post("/trackplay")
async def track_play(payload: TrackRequest | None = None) -> dict[str, Any]:
    """
    Count a play of one track.
    """
    engine = get_analytics_engine()
    filename = payload.filename if payload else None

    try:
        count = await asyncio.to_thread(engine.record_play, filename)
        return _with_warning({"message": "Play tracked.", "play_count": count})
    except InvalidInput as e:
        raise HTTPException(status_code=400, detail=str(e))
    except NotReady as e:
        raise HTTPException(status_code=503, detail=str(e))
    except Exception as e:
        logger.exception(f"Failed to track play for {filename!r}")
        raise HTTPException(status_code=500, detail=f"Failed to track play: {e}")


@router.post("/trackdownload")
async def track_download(payload: TrackRequest | None = None) -> dict[str, Any]:
    """
    Count a download of one track.
    """
    engine = get_analytics_engine()
    filename = payload.filename if payload else None

    try:
        count = await asyncio.to_thread(engine.record_download, filename)
        return _with_warning({"message": "Download tracked.", "download_count": count})
    except InvalidInput as e:
        raise HTTPException(status_code=400, detail=str(e))
    except NotReady as e:
        raise HTTPException(status_code=503, detail=str(e))
    except Exception as e:
        logger.exception(f"Failed to track download for {filename!r}")
        raise HTTPException(status_code=500, detail=f"Failed to track download: {e}")
