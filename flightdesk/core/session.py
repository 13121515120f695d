from typing import Dict, Optional

from pydantic import BaseModel


class AgencySession(BaseModel):
    """
    Authenticated agency context.

    Passed explicitly into every backend client instead of being read
    from ambient storage. Once invalidated it must not be reused; the
    caller has to login again.
    """
    access_token: str
    agency_id: Optional[str] = None
    agency_name: Optional[str] = None
    user_type: str = "agency"
    expired: bool = False

    def auth_headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.access_token}"}

    def invalidate(self) -> None:
        self.expired = True
