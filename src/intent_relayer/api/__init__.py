"""
API module for the intent relayer.

Provides FastAPI routes and models for signed-intent intake and relayer status.
"""

from intent_relayer.api.models import SignedIntentRequest, StatusResponse, SubmitResponse
from intent_relayer.api.server import create_app

__all__ = [
    "SignedIntentRequest",
    "StatusResponse",
    "SubmitResponse",
    "create_app",
]
