"""
Per-session workspaces for the HTTP surface.

Each agency token gets its own backend client, search store, validator,
enrichment cache and open wizards. Workspaces are opened by login only;
a rejected token discards the whole workspace.
"""
import logging
import uuid
from typing import Dict, Optional

from flightdesk.core.session import AgencySession
from flightdesk.models.flight_models import ValidationStatus
from flightdesk.services.booking.wizard import BookingWizard
from flightdesk.services.flight.enrichment import OfferEnrichment
from flightdesk.services.flight.offer_cache import SearchStore
from flightdesk.services.flight.validation import BackgroundValidator, ValidationHandle
from flightdesk.services.integration.backend.client import BackendClient

logger = logging.getLogger("FlightDesk-Workspace")


class AgencyWorkspace:
    def __init__(self, session: AgencySession, client: Optional[BackendClient] = None):
        self.session = session
        self.client = client or BackendClient(session)
        self.searches = SearchStore()
        self.validator = BackgroundValidator(self.client)
        self.enrichment = OfferEnrichment(self.client)
        self.wizards: Dict[str, BookingWizard] = {}

    def open_wizard(self, wizard: BookingWizard) -> str:
        wizard_id = uuid.uuid4().hex
        self.wizards[wizard_id] = wizard
        self.prune()
        return wizard_id

    def abandon_wizard(self, wizard_id: str) -> bool:
        """
        Drop the wizard. Its validation handle is forgotten only when no
        other open wizard shares it.
        """
        wizard = self.wizards.pop(wizard_id, None)
        if wizard is None:
            return False

        handle = wizard.handle
        wizard.abandon()
        if handle is not None and not self._held(handle):
            self.validator.discard(handle)
        return True

    def prune(self) -> None:
        """
        Drop finished wizards and expired searches and enrichment, then
        forget validations that no open wizard holds and that either belong
        to an expired search or failed.
        """
        for wizard_id, wizard in list(self.wizards.items()):
            if wizard.closed:
                del self.wizards[wizard_id]

        searches = self.searches.prune()
        panels = self.enrichment.cache.prune()

        def keep(handle: ValidationHandle) -> bool:
            if self._held(handle):
                return True
            return handle.offer.search_id in self.searches and handle.status != ValidationStatus.FAILED

        handles = self.validator.prune(keep)
        if searches or panels or handles:
            logger.info(f"🧹 Workspace pruned | searches={searches} | panels={panels} | validations={handles}")

    def _held(self, handle: ValidationHandle) -> bool:
        return any(w.handle is handle for w in self.wizards.values())

    def close(self) -> None:
        for wizard in self.wizards.values():
            wizard.abandon()
        self.wizards.clear()
        self.enrichment.cache.clear()


_workspaces: Dict[str, AgencyWorkspace] = {}


def get_workspace(token: str) -> Optional[AgencyWorkspace]:
    """Workspace opened by login for this token, or None. An expired one is discarded."""
    workspace = _workspaces.get(token)
    if workspace is not None and workspace.session.expired:
        discard_workspace(token)
        return None
    return workspace


def register_session(session: AgencySession) -> AgencyWorkspace:
    discard_workspace(session.access_token)
    workspace = AgencyWorkspace(session)
    _workspaces[session.access_token] = workspace
    return workspace


def discard_workspace(token: str) -> None:
    workspace = _workspaces.pop(token, None)
    if workspace is not None:
        workspace.close()
        logger.info(f"🧹 Workspace discarded | agency={workspace.session.agency_name}")


def clear_workspaces() -> None:
    """Drop every workspace (for tests)."""
    for token in list(_workspaces):
        discard_workspace(token)
