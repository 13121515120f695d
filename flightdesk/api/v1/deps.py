from typing import Optional

from fastapi import Header, HTTPException

from flightdesk.core.workspace import AgencyWorkspace, get_workspace


def bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


async def current_workspace(authorization: Optional[str] = Header(default=None)) -> AgencyWorkspace:
    token = bearer_token(authorization)
    if token is None:
        raise HTTPException(status_code=401, detail="You are not logged in. Please login first.")

    workspace = get_workspace(token)
    if workspace is None:
        raise HTTPException(status_code=401, detail="Your session has expired. Please login again.")
    return workspace
