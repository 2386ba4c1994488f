"""
=============================================================================
AUTHENTICATION GATE
=============================================================================

Route-group middleware that lets a request through only when a credential
verifier accepts its ``Authorization`` header.

=============================================================================
PLUGGABLE VERIFICATION
=============================================================================

    ┌───────────────────┐   credential    ┌──────────────────────────┐
    │  AuthMiddleware   │ ──────────────► │  CredentialVerifier      │
    │                   │                 │    verify(credential)    │
    │  401 on failure   │ ◄────────────── │    → Principal           │
    │  context[         │   Principal or  │    raise AuthError       │
    │   "principal"]    │   AuthError     └──────────┬───────────────┘
    └───────────────────┘                            │
                                     ┌───────────────┴───────────────┐
                                     │                               │
                           StaticTokenVerifier              (your JWT / session /
                           "Bearer test-token"               API-key verifier)

The gate knows nothing about token formats. Swapping the placeholder
static token for real verification means passing a different verifier;
the pipeline and the routes stay as they are.

=============================================================================
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
import hmac
import logging
from typing import Any, Dict, Optional, Tuple

from .base import Middleware, NextHandler
from ..http.request import HTTPRequest
from ..http.response import HTTPResponse, unauthorized

logger = logging.getLogger(__name__)


PRINCIPAL_KEY = "principal"

MISSING_CREDENTIAL = "未提供认证令牌"
INVALID_CREDENTIAL = "认证令牌无效"


class AuthenticationError(Exception):
    """Raised by a verifier; the message is sent to the client."""


@dataclass(frozen=True)
class Principal:
    """
    The authenticated caller.

    Attributes:
        subject: Stable identifier of the caller.
        roles: Role names granted to the caller.
        claims: Any further verifier-specific attributes.
    """
    subject: str
    roles: Tuple[str, ...] = ()
    claims: Dict[str, Any] = field(default_factory=dict)


class CredentialVerifier(ABC):
    """Turns a raw credential into a Principal."""

    @abstractmethod
    def verify(self, credential: Optional[str]) -> Principal:
        """
        Args:
            credential: The full Authorization header value, or None when
                the header is absent.

        Raises:
            AuthenticationError: When the credential is missing or rejected.
        """


class StaticTokenVerifier(CredentialVerifier):
    """
    Accepts exactly one Authorization header value.

    A placeholder for development and tests: every caller presenting the
    token becomes the same principal.
    """

    def __init__(
        self,
        expected: str = "Bearer test-token",
        principal: Optional[Principal] = None,
    ):
        self.expected = expected
        self.principal = principal or Principal(
            subject="admin",
            roles=("administrator",),
            claims={"id": 1, "username": "admin"},
        )

    def verify(self, credential: Optional[str]) -> Principal:
        if not credential:
            raise AuthenticationError(MISSING_CREDENTIAL)
        if not hmac.compare_digest(credential.encode("utf-8"), self.expected.encode("utf-8")):
            raise AuthenticationError(INVALID_CREDENTIAL)
        return self.principal


class AuthMiddleware(Middleware):
    """
    401s any request the verifier rejects; otherwise stores the Principal
    in ``request.context["principal"]`` and continues.
    """

    def __init__(self, verifier: CredentialVerifier, header_name: str = "Authorization"):
        self.verifier = verifier
        self.header_name = header_name

    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        credential = request.get_header(self.header_name) or None

        try:
            principal = self.verifier.verify(credential)
        except AuthenticationError as e:
            logger.info(f"Rejected {request.method} {request.path}: {e}")
            return unauthorized(str(e))

        request.context[PRINCIPAL_KEY] = principal
        return next(request)
