"""Liveness check (no auth)."""
from datetime import datetime, timezone

from fastapi import APIRouter

router = APIRouter()


@router.get("/test")
def server_test():
    """Return a fixed message and the server time."""
    return {
        "message": "Server is running!",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "status": "OK",
    }
