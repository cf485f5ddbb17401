"""
Statistics API Routes

Totals, per-track table and daily activity for the stats page.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, HTTPException, Query

from jukebox.app_settings import get_settings
from jukebox.services.errors import InvalidInput, NotReady
from jukebox.services.reporting import get_reporting_service

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/stats")
async def get_stats(
    days: int | None = Query(None, ge=1, le=366, description="Days in the daily series (defaults to config)"),
) -> dict[str, Any]:
    """
    Get total visits, per-track counts and the daily series.

    dailyData holds four parallel arrays (labels, visits, plays, downloads),
    one entry per local calendar day, oldest first.
    """
    reporting = get_reporting_service()
    window = days if days is not None else get_settings().stats_days

    try:
        return reporting.build_stats_payload(window)
    except InvalidInput as e:
        raise HTTPException(status_code=400, detail=str(e))
    except NotReady as e:
        raise HTTPException(status_code=503, detail=str(e))
    except Exception as e:
        logger.exception("Failed to get stats")
        raise HTTPException(status_code=500, detail=f"Failed to fetch stats: {e}")
