from typing import Optional

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel

from courtpay.confirmation import ConfirmationHandler
from courtpay.models import DomainKind

router = APIRouter(prefix="/payments")


class ConfirmRequest(BaseModel):
    sessionId: Optional[str] = None


def get_handler(request: Request) -> ConfirmationHandler:
    return request.app.state.confirmation_handler


@router.post("/confirm")
def confirm_payment(request: ConfirmRequest, handler: ConfirmationHandler = Depends(get_handler)):
    return handler.confirm(request.sessionId).to_dict()


@router.post("/confirm-booking")
def confirm_booking_payment(request: ConfirmRequest, handler: ConfirmationHandler = Depends(get_handler)):
    return handler.confirm(request.sessionId, expected_kind=DomainKind.BOOKING).to_dict()


@router.post("/confirm-tournament")
def confirm_tournament_payment(request: ConfirmRequest, handler: ConfirmationHandler = Depends(get_handler)):
    return handler.confirm(request.sessionId, expected_kind=DomainKind.TOURNAMENT_REGISTRATION).to_dict()


@router.post("/confirm-ad")
def confirm_ad_payment(request: ConfirmRequest, handler: ConfirmationHandler = Depends(get_handler)):
    return handler.confirm(request.sessionId, expected_kind=DomainKind.AD_UPGRADE).to_dict()
