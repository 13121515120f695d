"""
FlightDesk API - Auth Routes

Endpoints:
    POST /auth/login   - Agency login, opens a workspace for the token
    POST /auth/logout  - Discards the workspace
"""
import logging
from typing import Optional

from fastapi import APIRouter, Header
from pydantic import BaseModel

from flightdesk.api.v1.deps import bearer_token
from flightdesk.core.workspace import discard_workspace, register_session
from flightdesk.services.auth import login

router = APIRouter(prefix="/auth", tags=["Auth"])
logger = logging.getLogger("FlightDesk-AuthRoutes")


class LoginRequest(BaseModel):
    email: str
    password: str


@router.post("/login")
async def login_endpoint(request: LoginRequest):
    session = await login(request.email, request.password)
    register_session(session)
    return {
        "access_token": session.access_token,
        "agency_id": session.agency_id,
        "agency_name": session.agency_name,
    }


@router.post("/logout")
async def logout_endpoint(authorization: Optional[str] = Header(default=None)):
    token = bearer_token(authorization)
    if token:
        discard_workspace(token)
    return {"success": True}
