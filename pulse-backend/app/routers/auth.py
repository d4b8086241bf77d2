from fastapi import APIRouter, Depends

from app.core.api_docs import error_responses
from app.core.identity import Identity, get_current_identity
from app.schemas.auth import IdentityOut, MeOut

router = APIRouter(tags=["auth"])


@router.get(
    "/me",
    response_model=MeOut,
    summary="Current identity, or null when the request carries no token",
    responses=error_responses(401),
)
def me(identity: Identity | None = Depends(get_current_identity)):
    if identity is None:
        return MeOut(data=None)
    return MeOut(data=IdentityOut(id=identity.id, display_name=identity.display_name, emails=identity.emails))
