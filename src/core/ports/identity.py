"""
Identity Provider Interfaces.

The identity provider is an external collaborator: it issues and verifies
bearer credentials and owns login accounts. The service only ever asks it
two questions, "who is this token?" and "please create this account".
"""

from __future__ import annotations

from typing import Any, Protocol


class IdentityVerifierPort(Protocol):
    def verify(self, token: str) -> str | None:
        """
        Validate a bearer credential.

        Returns:
            The stable subject identifier, or None if the token is invalid
        """
        ...


class AccountProviderPort(Protocol):
    def create_account(self, email: str, password: str, metadata: dict[str, Any]) -> str:
        """
        Create a login account.

        Returns:
            Subject identifier of the new account

        Raises:
            AccountCreationError: If the provider refuses the account
        """
        ...


class AccountCreationError(Exception):
    """Raised when the identity provider cannot create an account."""

    def __init__(self, message: str, *, reason: str = "rejected"):
        self.reason = reason
        super().__init__(message)
