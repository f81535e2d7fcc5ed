"""Shared router wiring: orchestrator construction and error translation."""
from __future__ import annotations

import logging
from typing import NoReturn

from fastapi import HTTPException

from teamtrack.date_utils import Clock
from teamtrack.db import connection
from teamtrack.errors import ProgressEngineError, http_status_for
from teamtrack.services.recalculation import RecalculationOrchestrator, build_orchestrator

logger = logging.getLogger("teamtrack.api")

clock = Clock()


async def get_orchestrator() -> RecalculationOrchestrator:
    db = await connection.get_connection()
    return build_orchestrator(db, clock=clock)


def raise_http(exc: ProgressEngineError) -> NoReturn:
    status = http_status_for(exc)
    if status >= 500:
        logger.error(f"{type(exc).__name__}: {exc}")
    raise HTTPException(status_code=status, detail=str(exc)) from exc
