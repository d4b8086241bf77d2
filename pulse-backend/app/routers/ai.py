from fastapi import APIRouter, Depends

from app.core.api_docs import error_responses
from app.core.rate_limit import enforce_ai_suggest_rate_limit
from app.schemas.ai import SuggestMessageIn, SuggestMessageOut
from app.services.suggestion_service import suggest

router = APIRouter(prefix="/ai", tags=["ai"])


@router.post(
    "/suggest-message",
    response_model=SuggestMessageOut,
    summary="Suggest campaign message copy",
    description=(
        "Returns up to `n` short message suggestions. Falls back to canned copy when the "
        "text-generation provider is not configured or fails."
    ),
    responses=error_responses(400, 422, 429, 500),
    dependencies=[Depends(enforce_ai_suggest_rate_limit)],
)
def suggest_message(payload: SuggestMessageIn):
    result = suggest(payload.context, payload.audience, payload.tone, payload.n)
    return SuggestMessageOut(model=result.model, suggestions=result.suggestions)
