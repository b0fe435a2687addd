"""Search router — initiate, poll, and run flight searches."""

import asyncio
import logging

from fastapi import APIRouter, Depends, HTTPException, Query

from koalaroute.config import settings
from koalaroute.dependencies import get_orchestrator
from koalaroute.schemas.flight import SearchHandle, SearchState
from koalaroute.schemas.search import SearchRequest
from koalaroute.services.errors import (
    ProviderError,
    SearchTimeoutError,
    UnknownProviderError,
    UnsupportedCurrencyError,
)
from koalaroute.services.search_orchestrator import SearchOrchestrator

logger = logging.getLogger(__name__)

router = APIRouter()


def provider_http_error(e: ProviderError) -> HTTPException:
    return HTTPException(status_code=e.status_code, detail=e.to_dict())


def _with_default_currency(req: SearchRequest) -> SearchRequest:
    if "currency" in req.model_fields_set:
        return req
    return req.model_copy(update={"currency": settings.default_currency.lower()})


@router.post("")
async def search_flights(
    req: SearchRequest,
    provider: str | None = Query(None),
    orchestrator: SearchOrchestrator = Depends(get_orchestrator),
):
    """Start a search. Synchronous providers answer with offers, async ones with a handle."""
    try:
        outcome = await orchestrator.search(_with_default_currency(req), provider)
    except UnknownProviderError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except UnsupportedCurrencyError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except ProviderError as e:
        logger.error(f"Search failed: {e}")
        raise provider_http_error(e)
    return outcome.to_dict()


@router.post("/poll")
async def poll_search(
    handle: SearchHandle,
    orchestrator: SearchOrchestrator = Depends(get_orchestrator),
):
    """Poll an in-flight search once."""
    try:
        outcome = await orchestrator.poll(handle)
    except UnknownProviderError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except UnsupportedCurrencyError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except ProviderError as e:
        logger.error(f"Poll failed for {handle.search_id}: {e}")
        raise provider_http_error(e)

    if outcome.state == SearchState.COMPLETE:
        status = "complete"
    elif outcome.is_terminal:
        status = outcome.state.value
    else:
        status = "pending"
    return {"status": status, **outcome.to_dict()}


@router.post("/run")
async def run_search(
    req: SearchRequest,
    provider: str | None = Query(None),
    orchestrator: SearchOrchestrator = Depends(get_orchestrator),
):
    """Search and poll until results, timeout, or failure."""
    try:
        outcome = await asyncio.wait_for(
            orchestrator.run(_with_default_currency(req), provider),
            timeout=settings.search_request_timeout_seconds,
        )
        outcome.raise_for_state()
    except UnknownProviderError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except UnsupportedCurrencyError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except asyncio.TimeoutError:
        raise HTTPException(status_code=504, detail="Search timed out. Please try again.")
    except SearchTimeoutError as e:
        raise HTTPException(
            status_code=408,
            detail={
                "error": "Flight search timeout. Please try again later.",
                "provider": e.provider,
                "attempts": e.attempts,
                "last_status": e.last_status,
            },
        )
    except ProviderError as e:
        raise provider_http_error(e)
    return outcome.to_dict()
