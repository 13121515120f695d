"""
FlightDesk - Configuration
Environment driven settings (.env supported)

The agency session is NOT configuration: it is passed explicitly
to every backend client (see flightdesk.core.session).
"""

import os
from dotenv import load_dotenv

load_dotenv()

# Backend
API_BASE_URL = os.getenv("FLIGHTDESK_API_BASE_URL", "http://localhost:8000").rstrip("/")
HTTP_TIMEOUT = float(os.getenv("FLIGHTDESK_HTTP_TIMEOUT", "30"))

# Flight provider
DEFAULT_CURRENCY = os.getenv("FLIGHTDESK_DEFAULT_CURRENCY", "PKR")
DEFAULT_SUPPLIER_CODE = int(os.getenv("FLIGHTDESK_SUPPLIER_CODE", "2"))

# Offers (and everything cached against them) expire after this long
OFFER_TTL_MINUTES = int(os.getenv("FLIGHTDESK_OFFER_TTL_MINUTES", "20"))

# Logging
LOG_LEVEL = os.getenv("FLIGHTDESK_LOG_LEVEL", "INFO").upper()
