"""Booking router — submit a chosen offer to its provider."""

import logging

from fastapi import APIRouter, Depends, HTTPException

from koalaroute.dependencies import get_orchestrator
from koalaroute.routers.search import provider_http_error
from koalaroute.schemas.booking import BookingConfirmation, BookingRequest
from koalaroute.services.errors import ProviderError, UnknownProviderError
from koalaroute.services.search_orchestrator import SearchOrchestrator

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("", response_model=BookingConfirmation)
async def book_offer(
    req: BookingRequest,
    orchestrator: SearchOrchestrator = Depends(get_orchestrator),
):
    try:
        return await orchestrator.book(req.offer, req.traveler)
    except UnknownProviderError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ProviderError as e:
        raise provider_http_error(e)
    except (KeyError, ValueError) as e:
        raise HTTPException(status_code=400, detail=f"Offer cannot be booked: {e}")
