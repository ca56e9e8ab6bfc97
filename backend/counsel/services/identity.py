import logging
from enum import Enum
from typing import Optional

from ..core.security import (
    TokenError,
    create_identity_token,
    issue_anonymous_identity,
    verify_identity_token,
)

logger = logging.getLogger(__name__)


class IdentityState(str, Enum):
    UNINITIALIZED = "uninitialized"
    AUTHENTICATING = "authenticating"
    READY = "ready"


class IdentityProvider:
    """Establishes one stable anonymous identity for a browser session.

    There is no failure state: a pre-provisioned token that does not verify
    falls back to a freshly issued anonymous identity.
    """

    def __init__(self, initial_token: Optional[str] = None):
        self.initial_token = initial_token
        self.state = IdentityState.UNINITIALIZED
        self.identity: Optional[str] = None
        self._token: Optional[str] = None

    @property
    def ready(self) -> bool:
        return self.state == IdentityState.READY

    @property
    def token(self) -> Optional[str]:
        return self._token

    async def authenticate(self) -> str:
        if self.state == IdentityState.READY:
            return self.identity  # type: ignore[return-value]

        self.state = IdentityState.AUTHENTICATING
        identity: Optional[str] = None
        if self.initial_token:
            try:
                identity = verify_identity_token(self.initial_token)
                self._token = self.initial_token
            except TokenError as e:
                logger.warning("Pre-provisioned identity token rejected (%s); issuing anonymous identity", e)

        if identity is None:
            identity = issue_anonymous_identity()
            self._token = create_identity_token(identity)
            logger.info("Issued anonymous identity %s", identity)

        self.identity = identity
        self.state = IdentityState.READY
        return identity
