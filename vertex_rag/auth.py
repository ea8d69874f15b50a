"""
Google Cloud credentials for the Vertex AI RAG API.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

import google.auth
from google.auth.credentials import Credentials
from google.auth.transport.requests import Request
from google.oauth2 import service_account

logger = logging.getLogger(__name__)

CLOUD_PLATFORM_SCOPE = "https://www.googleapis.com/auth/cloud-platform"


def load_credentials(key_file: Optional[str] = None) -> tuple[Credentials, Optional[str]]:
    """
    Load credentials and the project they belong to.

    Args:
        key_file: Path to a service account JSON key (uses application
            default credentials if not provided)

    Returns:
        (credentials, project_id); project_id may be None for ADC setups
        that do not pin a project
    """
    if key_file:
        credentials = service_account.Credentials.from_service_account_file(
            key_file,
            scopes=[CLOUD_PLATFORM_SCOPE],
        )
        logger.debug("Loaded service account %s", credentials.service_account_email)
        return credentials, credentials.project_id

    credentials, project_id = google.auth.default(scopes=[CLOUD_PLATFORM_SCOPE])
    logger.debug("Using application default credentials (project: %s)", project_id)
    return credentials, project_id


async def get_access_token(credentials: Credentials) -> str:
    """Return a valid bearer token, refreshing it off the event loop when needed."""
    if not credentials.valid:
        logger.debug("Refreshing access token")
        await asyncio.to_thread(credentials.refresh, Request())
    return credentials.token
