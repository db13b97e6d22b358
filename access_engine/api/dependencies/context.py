"""
School context dependency.

X-School-Id names the school and X-User-Email the signed-in user, both set
by the authenticating gateway in front of this service. The role is looked
up in the store; any role header sent by the client is ignored.
"""

from typing import Optional

from fastapi import Depends, Header

from access_engine.api.dependencies.store import get_store
from access_engine.platform.tenant_context import SchoolContext, load_school_context


async def get_school_context(
    x_school_id: Optional[str] = Header(None),
    x_user_email: Optional[str] = Header(None),
    store=Depends(get_store),
) -> SchoolContext:
    return await load_school_context(store, x_school_id, x_user_email)
