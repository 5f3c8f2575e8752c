"""Keycloak OIDC provider for token introspection."""

import logging
from dataclasses import dataclass, field

from keycloak import KeycloakOpenID
from keycloak.exceptions import KeycloakError

logger = logging.getLogger(__name__)

# Claims copied into the attribute bag; role claims are never trusted.
ATTRIBUTE_CLAIMS = ("email", "preferred_username", "department", "location", "client_id")


@dataclass
class OIDCUser:
    """Authenticated identity: user id plus an attribute bag."""

    user_id: str
    attributes: dict[str, str] = field(default_factory=dict)


class KeycloakProvider:
    """Keycloak OIDC - validates access tokens and extracts identity."""

    def __init__(
        self,
        server_url: str,
        realm: str,
        client_id: str,
        client_secret: str = "",
    ) -> None:
        self._keycloak = KeycloakOpenID(
            server_url=server_url,
            realm_name=realm,
            client_id=client_id,
            client_secret_key=client_secret,
        )

    def decode_token(self, token: str) -> OIDCUser | None:
        """Introspect token, return identity or None if it is not active."""
        try:
            token_info = self._keycloak.introspect(token)
        except KeycloakError as e:
            logger.warning("Token introspection failed: %s", e)
            return None
        if not token_info.get("active") or not token_info.get("sub"):
            return None
        attributes = {
            claim: str(token_info[claim])
            for claim in ATTRIBUTE_CLAIMS
            if token_info.get(claim) is not None
        }
        return OIDCUser(user_id=token_info["sub"], attributes=attributes)
