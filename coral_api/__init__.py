"""Top-level coral_api package.

Sub-packages
------------
coral_api.backend
    FastAPI server (api/), statistical core (core/), schemas/, services/
coral_api.client
    httpx client for the REST API with user-facing error mapping
"""

from __future__ import annotations

__version__ = "0.1.0"
