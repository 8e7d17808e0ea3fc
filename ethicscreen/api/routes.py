"""API routes for EthicScreen."""

import logging
from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, HTTPException

from ethicscreen.connectors import DatabaseSource, YahooFinanceConnector
from ethicscreen.models import InvalidRequestError, Policy
from ethicscreen.screening import ScreeningService

logger = logging.getLogger(__name__)

router = APIRouter()

_service: Optional[ScreeningService] = None


def get_service() -> ScreeningService:
    """Shared service backed by the configured database."""
    global _service
    if _service is None:
        store = DatabaseSource()
        _service = ScreeningService(source=store, financials=YahooFinanceConnector(), sink=store)
    return _service


@router.post("/screen")
async def screen(
    payload: Any = Body(...),
    service: ScreeningService = Depends(get_service),
):
    """Screen one or more symbols against the enabled policies."""
    try:
        response = await service.screen(payload)
    except InvalidRequestError as e:
        logger.info(f"Rejected screen request: {e}")
        raise HTTPException(status_code=400, detail={"message": str(e), "errors": e.errors})
    return response.model_dump(mode="json", by_alias=True)


@router.get("/results/{audit_id}")
async def get_result(audit_id: str, service: ScreeningService = Depends(get_service)):
    """Get a stored screening result by audit id."""
    result = service.get_result(audit_id)
    if result is None:
        raise HTTPException(status_code=404, detail="Result not found")
    return result


@router.get("/methodology/{policy}")
async def get_methodology(policy: str, service: ScreeningService = Depends(get_service)):
    """Describe the thresholds in force for a policy."""
    try:
        resolved = Policy(policy.upper())
    except ValueError:
        raise HTTPException(status_code=404, detail=f"Unknown policy: {policy}")
    return service.methodology(resolved)
