"""Bearer token verification against the identity provider (python-jose)."""
import json
import logging
import re
import threading
import time
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

import httpx
from jose import jwt
from jose.exceptions import JOSEError

from songvault.config import (
    AUTH_JWKS_DEFAULT_MAX_AGE_SEC,
    AUTH_JWKS_URL,
    AUTH_JWT_ALGORITHMS,
    AUTH_JWT_AUDIENCE,
    AUTH_JWT_ISSUER,
    AUTH_JWT_KEY,
    EXTERNAL_TIMEOUT_SEC,
)
from songvault.errors import DependencyFailure, Unauthenticated
from songvault.models.user import Identity

logger = logging.getLogger(__name__)

_MAX_AGE = re.compile(r"(?:^|,)\s*max-age\s*=\s*(\d+)", re.IGNORECASE)

KeySetFetch = Callable[[str], Tuple[dict, Optional[str]]]


def _max_age(cache_control: Optional[str], default: int) -> int:
    """Seconds a response may be cached for, from its Cache-Control header."""
    if not cache_control:
        return default
    if "no-store" in cache_control.lower() or "no-cache" in cache_control.lower():
        return 0
    match = _MAX_AGE.search(cache_control)
    return int(match.group(1)) if match else default


def _key_ids(key_set: dict) -> set:
    # JWKS ({"keys": [...]}) or Google's x509 form ({kid: PEM})
    if "keys" in key_set:
        return {k.get("kid") for k in key_set["keys"] if k.get("kid")}
    return set(key_set)


def fetch_key_set(url: str) -> Tuple[dict, Optional[str]]:
    """GET the published key set; returns (keys, Cache-Control header)."""
    response = httpx.get(url, timeout=EXTERNAL_TIMEOUT_SEC)
    response.raise_for_status()
    return response.json(), response.headers.get("cache-control")


class JwksCache:
    """Key set fetched from the provider and kept for its Cache-Control max-age.

    Providers rotate signing keys; a token whose ``kid`` is not in the cached
    set forces a refetch before it is rejected.
    """

    def __init__(
        self,
        url: str,
        fetch: KeySetFetch = fetch_key_set,
        clock: Callable[[], float] = time.monotonic,
        default_max_age: int = AUTH_JWKS_DEFAULT_MAX_AGE_SEC,
    ) -> None:
        self.url = url
        self._fetch = fetch
        self._clock = clock
        self._default_max_age = default_max_age
        self._lock = threading.Lock()
        self._key_set: Optional[dict] = None
        self._expires_at = 0.0

    def _refresh(self) -> None:
        try:
            key_set, cache_control = self._fetch(self.url)
        except (httpx.HTTPError, ValueError) as e:
            if self._key_set is None:
                logger.error("Could not fetch signing keys from %s: %s", self.url, e)
                raise DependencyFailure(f"Could not fetch signing keys: {e}") from e
            logger.warning("Signing key refresh failed, keeping cached keys: %s", e)
            return
        self._key_set = key_set
        self._expires_at = self._clock() + _max_age(cache_control, self._default_max_age)
        logger.info("Loaded %d signing key(s) from %s", len(_key_ids(key_set)), self.url)

    def get(self, kid: Optional[str] = None) -> dict:
        """Current key set; refetched when expired or when kid is unknown."""
        with self._lock:
            if self._key_set is None or self._clock() >= self._expires_at:
                self._refresh()
            elif kid and kid not in _key_ids(self._key_set):
                logger.info("Unknown signing key %s, refetching key set", kid)
                self._refresh()
            return self._key_set


class IdentityVerifier:
    """Validates ID tokens and returns the caller's subject and email.

    ``key`` is a shared secret, a PEM public key, a JWKS dict
    ({"keys": [...]}) or a JwksCache that follows the provider's rotation.
    """

    def __init__(
        self,
        key: Union[str, dict, JwksCache],
        algorithms: List[str],
        audience: Optional[str] = None,
        issuer: Optional[str] = None,
    ) -> None:
        self._key = key
        self._algorithms = algorithms
        self._audience = audience
        self._issuer = issuer

    @classmethod
    def from_config(cls) -> "IdentityVerifier":
        key: Union[str, dict, JwksCache] = AUTH_JWT_KEY
        if AUTH_JWKS_URL:
            key = JwksCache(AUTH_JWKS_URL)
        elif AUTH_JWT_KEY.lstrip().startswith("{"):
            key = json.loads(AUTH_JWT_KEY)
        if not key:
            logger.warning("Neither AUTH_JWKS_URL nor AUTH_JWT_KEY set; every token will be rejected")
        return cls(key, AUTH_JWT_ALGORITHMS, AUTH_JWT_AUDIENCE, AUTH_JWT_ISSUER)

    def _signing_key(self, token: str) -> Union[str, Dict[str, Any]]:
        if not isinstance(self._key, JwksCache):
            return self._key
        try:
            kid = jwt.get_unverified_header(token).get("kid")
        except JOSEError as e:
            raise Unauthenticated("Invalid token") from e
        return self._key.get(kid)

    def verify(self, token: str) -> Identity:
        """Return the identity in token, or raise Unauthenticated."""
        if not self._key:
            raise Unauthenticated("Invalid token")
        key = self._signing_key(token)
        try:
            claims: dict[str, Any] = jwt.decode(
                token,
                key,
                algorithms=self._algorithms,
                audience=self._audience,
                issuer=self._issuer,
                options={"verify_aud": self._audience is not None},
            )
        except JOSEError as e:
            logger.warning("Token rejected: %s", e)
            raise Unauthenticated("Invalid token") from e

        # Firebase ID tokens carry the uid in both sub and user_id
        subject = claims.get("sub") or claims.get("user_id") or claims.get("uid")
        if not subject:
            raise Unauthenticated("Invalid token")
        return Identity(
            subject_id=str(subject),
            email=claims.get("email"),
            name=claims.get("name"),
        )
