from fastapi import APIRouter, Depends

from app.core.deps import get_admission_controller
from app.schemas.waitlist import ErrorResponse, SubscribeRequest, SubscribeResponse
from app.services.admission_service import AdmissionController

router = APIRouter(prefix="/subscribe", tags=["subscribe"])

_error_responses = {
    400: {"model": ErrorResponse},
    401: {"model": ErrorResponse},
    403: {"model": ErrorResponse},
    429: {"model": ErrorResponse},
    500: {"model": ErrorResponse},
}


@router.post("", response_model=SubscribeResponse, responses=_error_responses)
def subscribe(payload: SubscribeRequest, controller: AdmissionController = Depends(get_admission_controller)):
    """Join a waitlist with a project's API key. Joining twice is not an error."""
    result = controller.join(payload.api_key, payload.email, payload.ref)
    return SubscribeResponse(
        accepted=result.accepted,
        already_member=result.already_member,
        position=result.position,
        tier=result.tier,
        referral_token=result.referral_token,
        message=result.message,
    )
