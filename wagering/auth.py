"""
API key gate for the wagering API

Identity and bettor accounts live in the surrounding application; this only
decides which callers may reach the API and which of them may administer
markets.
"""

from fastapi import Security, HTTPException, status
from fastapi.security import APIKeyHeader
import os
from typing import Dict, FrozenSet
from dotenv import load_dotenv

# Load .env file
load_dotenv()

# API Key header
API_KEY_HEADER = APIKeyHeader(name="X-API-Key", auto_error=False)

DEV_API_KEY = "dev-key-insecure"
DEV_USER = "dev_user"


def _is_development() -> bool:
    return os.getenv("ENVIRONMENT") == "development"


# Valid API keys from environment
def get_valid_api_keys() -> Dict[str, str]:
    """Map each configured key (API_KEY_USER1..5) to its caller id"""
    keys = {}

    for i in range(1, 6):
        key = os.getenv(f"API_KEY_USER{i}")
        if key:
            keys[key] = f"user{i}"

    if not keys:
        # Development fallback (never use in production)
        if _is_development():
            keys[DEV_API_KEY] = DEV_USER
        else:
            raise ValueError("No API keys configured! Set API_KEY_USER1 in environment")

    return keys


def get_admin_users() -> FrozenSet[str]:
    """Callers allowed on /admin routes: ADMIN_USERS (comma list), default user1"""
    admins = {
        u.strip() for u in os.getenv("ADMIN_USERS", "user1").split(",") if u.strip()
    }
    if _is_development():
        admins.add(DEV_USER)
    return frozenset(admins)


VALID_API_KEYS = get_valid_api_keys()
ADMIN_USERS = get_admin_users()


async def verify_api_key(api_key: str = Security(API_KEY_HEADER)) -> str:
    """
    Verify API key and return the caller id

    Usage in FastAPI routes:
        @app.get("/api/markets/{market_id}/prices")
        async def route(user: str = Depends(verify_api_key)):
            ...
    """
    if not api_key:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="API key required. Include 'X-API-Key' header.",
            headers={"WWW-Authenticate": "ApiKey"},
        )

    if api_key not in VALID_API_KEYS:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API key",
            headers={"WWW-Authenticate": "ApiKey"},
        )

    return VALID_API_KEYS[api_key]


async def verify_admin_api_key(user: str = Security(verify_api_key)) -> str:
    """
    Verify the caller is in ADMIN_USERS

    Usage in FastAPI routes:
        @app.post("/admin/markets/{market_id}/resolve")
        async def route(user: str = Depends(verify_admin_api_key)):
            ...
    """
    if user not in ADMIN_USERS:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required"
        )

    return user
