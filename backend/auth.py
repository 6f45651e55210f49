"""
API key authentication for the combination selector
Operator keys come from API_KEY_USER1..API_KEY_USER5; user1 is the admin
who may clear the bet log
"""

from fastapi import Security, HTTPException, status
from fastapi.security import APIKeyHeader
import logging
import os
from typing import Dict
from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

MAX_OPERATORS = 5
ADMIN_OPERATOR = "user1"
DEV_API_KEY = "dev-key-insecure"

API_KEY_HEADER = APIKeyHeader(name="X-API-Key", auto_error=False)


def get_valid_api_keys() -> Dict[str, str]:
    """Map each configured key to its operator name.

    Read on every request so keys rotated in the environment take effect
    without a restart.
    """
    keys = {
        key: f"user{i}"
        for i in range(1, MAX_OPERATORS + 1)
        if (key := os.getenv(f"API_KEY_USER{i}"))
    }
    if keys:
        return keys

    if os.getenv("ENVIRONMENT") == "development":
        logger.warning("No operator keys configured; accepting the development key")
        return {DEV_API_KEY: "dev_user"}

    raise HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail="Selector API is not configured: set API_KEY_USER1 before starting sessions",
    )


async def verify_api_key(api_key: str = Security(API_KEY_HEADER)) -> str:
    """Resolve the X-API-Key header to an operator name or reject with 401."""
    if not api_key:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-API-Key header; selector endpoints require an operator key",
            headers={"WWW-Authenticate": "ApiKey"},
        )

    operator = get_valid_api_keys().get(api_key)
    if operator is None:
        logger.warning("Rejected request with unknown API key")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unknown operator key",
            headers={"WWW-Authenticate": "ApiKey"},
        )
    return operator


async def verify_admin_api_key(operator: str = Security(verify_api_key)) -> str:
    """Only the admin operator may perform destructive bet-log actions."""
    if operator != ADMIN_OPERATOR:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Operator {operator} may not modify the bet log",
        )
    return operator
