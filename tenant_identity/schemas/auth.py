from __future__ import annotations

from typing import Optional

from pydantic import BaseModel


class WhoAmIResponse(BaseModel):
    org_id: str
    auth_type: str
    usage_source: str
    key_set_id: Optional[str] = None
    key_id: Optional[str] = None
    user_id: Optional[str] = None
    is_operator: bool = False
