from typing import Any

import httpx
import jwt
from pydantic import BaseModel

from permits import util
from permits.exceptions import AuthenticationError, DependencyUnavailable

ISSUER_PREFIX = "https://securetoken.google.com/"


class AuthenticatedUser(BaseModel):
    uid: str
    #: The lowercase email address, or "".
    email: str = ""
    claims: dict[str, Any]


class TokenVerifier:
    """
    Verify Firebase ID tokens with the public keys of Google's secure token service.

    The keys are fetched on first use, and fetched again if a token is signed with an unknown key (keys rotate).

    :param jwks_url: The JWKS endpoint with the public keys.
    :param project_id: The Firebase project ID, which is the audience of the tokens.
    :param keys: The public keys by key ID, to skip fetching them.
    """

    def __init__(
        self,
        jwks_url: str,
        project_id: str,
        client: httpx.AsyncClient,
        keys: dict[str, jwt.PyJWK] | None = None,
    ):
        self.jwks_url = jwks_url
        self.project_id = project_id
        self.client = client
        self.kid_to_jwk = keys

    async def load_keys(self, *, refresh: bool = False) -> dict[str, jwt.PyJWK]:
        if self.kid_to_jwk is None or refresh:
            try:
                response = await self.client.get(self.jwks_url)
                response.raise_for_status()
                jwks = jwt.PyJWKSet.from_dict(util.loads(response))
            except (httpx.HTTPError, jwt.PyJWKSetError, ValueError) as e:
                raise DependencyUnavailable("Unable to fetch token signing keys", cause=e) from e
            self.kid_to_jwk = {jwk.key_id: jwk for jwk in jwks.keys if jwk.key_id}
        return self.kid_to_jwk

    async def verify(self, token: str) -> AuthenticatedUser:
        """
        :param token: The encoded ID token.
        :return: The user identified by the token.
        :raises AuthenticationError: If the token is malformed, expired, or not signed for this project.
        """
        try:
            header = jwt.get_unverified_header(token)
        except jwt.InvalidTokenError as e:
            raise AuthenticationError("Invalid or expired authentication token", cause=e) from e

        kid = header.get("kid")
        keys = await self.load_keys()
        if kid not in keys:
            keys = await self.load_keys(refresh=True)
        if kid not in keys:
            raise AuthenticationError("Invalid or expired authentication token", cause="unknown signing key")

        try:
            claims = jwt.decode(
                token,
                keys[kid].key,
                algorithms=["RS256"],
                audience=self.project_id,
                issuer=f"{ISSUER_PREFIX}{self.project_id}",
                options={"require": ["exp", "iat", "sub"]},
            )
        except jwt.InvalidTokenError as e:
            raise AuthenticationError("Invalid or expired authentication token", cause=e) from e

        if not claims["sub"]:
            raise AuthenticationError("Invalid or expired authentication token", cause="empty subject")

        email = claims.get("email")
        return AuthenticatedUser(
            uid=claims["sub"],
            email=email.strip().lower() if isinstance(email, str) else "",
            claims=claims,
        )
