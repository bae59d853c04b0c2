"""Authentication flows that feed the identity tracker."""

from dataclasses import dataclass
from typing import Protocol

from nutrisnap.domain.identity import Identity
from nutrisnap.services.identity import IdentityTracker


class AuthError(RuntimeError):
    """Raised when the auth provider rejects a request."""


class AuthProvider(Protocol):
    """Interface for the authentication provider."""

    async def sign_in_anonymously(self) -> Identity:
        """Create a temporary anonymous account."""

    async def sign_in_with_password(self, email: str, password: str) -> Identity:
        """Sign in an existing account."""

    async def sign_up(self, email: str, password: str) -> Identity:
        """Create a permanent account and sign it in."""

    async def sign_out(self) -> None:
        """End the current provider session."""

    async def current(self) -> Identity:
        """Return the identity of the persisted provider session."""


@dataclass
class AuthService:
    """Runs auth flows and publishes each resulting identity."""

    provider: AuthProvider
    identity_tracker: IdentityTracker

    async def restore(self) -> Identity:
        """Publish whatever session the provider already holds."""
        return await self._publish(await self.provider.current())

    async def sign_in_anonymously(self) -> Identity:
        """Start a guest session."""
        return await self._publish(await self.provider.sign_in_anonymously())

    async def sign_in(self, email: str, password: str) -> Identity:
        """Sign in with email and password."""
        identity = await self.provider.sign_in_with_password(email, password)
        return await self._publish(identity)

    async def sign_up(self, email: str, password: str) -> Identity:
        """Register a permanent account."""
        return await self._publish(await self.provider.sign_up(email, password))

    async def sign_out(self) -> Identity:
        """Sign out and fall back to local-only mode."""
        await self.provider.sign_out()
        return await self._publish(Identity.signed_out())

    async def _publish(self, identity: Identity) -> Identity:
        await self.identity_tracker.publish(identity)
        return identity
