"""Bearer token validation.

Tokens are HS256 JWTs issued by the identity side of the system with a
``userId`` claim. This service only verifies them; it never issues tokens.
"""

from typing import Any

from jose import JWTError, jwt

from canteen_ordering_service.errors import AuthError


class TokenValidator:
    """Verifies signed bearer tokens against a shared secret."""

    def __init__(self, secret: str, algorithm: str = "HS256") -> None:
        """Initialize validator.

        Args:
            secret: Shared signing secret
            algorithm: JWT signing algorithm

        Raises:
            ValueError: If secret is empty
        """
        if not secret:
            raise ValueError("A token signing secret must be provided")

        self.secret = secret
        self.algorithm = algorithm

    def decode(self, token: str) -> dict[str, Any]:
        """Verify a token and return its claims.

        Args:
            token: Encoded JWT

        Returns:
            dict: Decoded claims

        Raises:
            AuthError: If the token is malformed, forged or expired
        """
        try:
            return jwt.decode(token, self.secret, algorithms=[self.algorithm])
        except JWTError as e:
            raise AuthError("Invalid or expired token") from e

    def subject(self, token: str) -> str:
        """Return the account ID a token was issued for.

        Raises:
            AuthError: If the token is invalid or carries no subject
        """
        claims = self.decode(token)
        user_id = claims.get("userId") or claims.get("sub")
        if not user_id:
            raise AuthError("Invalid token")
        return str(user_id)
