"""
Music Library API Routes

Track listing (merged with play/download counts) and client configuration.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from fastapi import APIRouter, HTTPException

from jukebox.app_settings import get_settings
from jukebox.library import list_music_files
from jukebox.services.errors import NotReady
from jukebox.services.reporting import get_reporting_service

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/music")
async def get_music() -> list[dict[str, Any]]:
    """
    List the tracks in the music directory, most played first.

    Returns filename (without extension), play_count and download_count.
    """
    settings = get_settings()
    reporting = get_reporting_service()

    try:
        reporting.engine.store.require_ready()
        files = await asyncio.to_thread(
            list_music_files, settings.music_dir, settings.allowed_extension
        )
        tracks = reporting.build_track_list(files)
        logger.info(f"Found {len(tracks)} tracks in {settings.music_dir}")
        return [track.to_payload() for track in tracks]
    except NotReady as e:
        raise HTTPException(status_code=503, detail=str(e))
    except Exception as e:
        logger.exception("Failed to build music list")
        raise HTTPException(status_code=500, detail=f"Failed to process music list: {e}")


@router.get("/config")
async def get_client_config() -> dict[str, Any]:
    """
    Client-side options for the player page.
    """
    settings = get_settings()
    return {
        "playlistPrefixFilter": settings.playlist_prefix_filter,
        "debugLogging": settings.debug_logging,
    }
