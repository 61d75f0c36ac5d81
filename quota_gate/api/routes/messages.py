from typing import Annotated

from fastapi import APIRouter, Depends

from quota_gate.api.dependencies import get_app_settings
from quota_gate.core.auth import verify_api_key
from quota_gate.core.config import Settings
from quota_gate.core.errors import ValidationAppError
from quota_gate.schemas.messages import SplitRequest, SplitResponse
from quota_gate.utils.message_splitter import split_for_delivery, split_message

router = APIRouter(
    prefix="/messages",
    tags=["Messages"],
    dependencies=[Depends(verify_api_key)],
)


@router.post("/split", response_model=SplitResponse)
async def split_text(
    body: SplitRequest,
    app_settings: Annotated[Settings, Depends(get_app_settings)],
) -> SplitResponse:
    """Split a long answer into messages ready for sequential delivery.

    With ``with_indicator`` each part of a multi-part answer ends with
    ``" (i/total)"`` and still fits ``max_length``.

    Raises:
        ValidationAppError: 400 if max_length is too small for the indicator.
    """
    max_length = body.max_length or app_settings.messaging.max_message_length

    if not body.with_indicator:
        chunks = list(split_message(body.text, max_length))
        return SplitResponse(chunks=chunks, count=len(chunks))

    try:
        chunks = split_for_delivery(body.text, max_length)
    except ValueError as exc:
        raise ValidationAppError(
            code="max_length_too_small",
            message=str(exc),
        ) from exc
    return SplitResponse(chunks=chunks, count=len(chunks))
