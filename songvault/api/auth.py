"""Auth gate: bearer token -> verified identity with its catalog role."""
import logging

from fastapi import Depends, Request

from songvault.api.state import AppState, get_state
from songvault.config import ADMIN_EMAILS
from songvault.core.external import call_external
from songvault.errors import Unauthenticated
from songvault.models.user import Identity, Role

logger = logging.getLogger(__name__)


def _bearer_token(request: Request) -> str:
    header = request.headers.get("Authorization")
    if not header or not header.startswith("Bearer "):
        raise Unauthenticated("No token provided")
    token = header.split(" ", 1)[1].strip()
    if not token:
        raise Unauthenticated("No token provided")
    return token


def default_role(email: str | None) -> Role:
    """Role given to a subject the first time it is seen."""
    if email and email.lower() in ADMIN_EMAILS:
        return Role.ADMIN
    return Role.USER


async def require_identity(request: Request, state: AppState = Depends(get_state)) -> Identity:
    """Verify the bearer token and resolve the caller's role; sets request.state.identity."""
    token = _bearer_token(request)
    identity = await call_external("token verification", state.verifier.verify, token)

    user = await call_external("user lookup", state.users.get_user, identity.subject_id)
    if user is None:
        username = identity.name or (identity.email or identity.subject_id).split("@")[0]
        user = await call_external(
            "user registration",
            state.users.add_user,
            identity.subject_id,
            username,
            default_role(identity.email),
        )
        logger.info("Registered user %s with role %s", identity.subject_id, user.role.value)
    identity.role = user.role

    request.state.identity = identity
    logger.debug("Authenticated %s (%s)", identity.subject_id, identity.role.value)
    return identity
