from __future__ import annotations

from fastapi import APIRouter, Depends

from tenant_identity.core.auth import AuthContext, require_auth_context
from tenant_identity.schemas.auth import WhoAmIResponse


router = APIRouter(prefix="/auth", tags=["auth"])


@router.get("/whoami", response_model=WhoAmIResponse)
def whoami(ctx: AuthContext = Depends(require_auth_context)):
    return WhoAmIResponse(
        org_id=ctx.org_id,
        auth_type=ctx.auth_type,
        usage_source=ctx.usage_source,
        key_set_id=ctx.key_set_id,
        key_id=ctx.key_id,
        user_id=ctx.user_id,
        is_operator=ctx.is_operator,
    )
