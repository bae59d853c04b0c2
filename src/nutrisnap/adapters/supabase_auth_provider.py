"""Supabase Auth implementation of the auth provider."""

import asyncio
from collections.abc import Callable
from dataclasses import dataclass

import httpx
from supabase import AuthError as SupabaseAuthError
from supabase import Client

from nutrisnap.domain.identity import Identity
from nutrisnap.services.auth import AuthError, AuthProvider

_AUTH_ERRORS = (SupabaseAuthError, httpx.HTTPError)


@dataclass
class SupabaseAuthProvider(AuthProvider):
    """Auth provider backed by Supabase Auth."""

    client: Client

    async def sign_in_anonymously(self) -> Identity:
        """Create an anonymous Supabase user."""
        response = await self._call(self.client.auth.sign_in_anonymously)
        return _identity_from_user(getattr(response, "user", None))

    async def sign_in_with_password(self, email: str, password: str) -> Identity:
        """Sign in with email and password."""
        response = await self._call(
            self.client.auth.sign_in_with_password,
            {"email": email, "password": password},
        )
        return _identity_from_user(getattr(response, "user", None))

    async def sign_up(self, email: str, password: str) -> Identity:
        """Register a new user with email and password."""
        response = await self._call(
            self.client.auth.sign_up, {"email": email, "password": password}
        )
        return _identity_from_user(getattr(response, "user", None))

    async def sign_out(self) -> None:
        """Sign out the current Supabase session."""
        await self._call(self.client.auth.sign_out)

    async def current(self) -> Identity:
        """Return the identity of the stored session, if any."""
        session = await self._call(self.client.auth.get_session)
        return _identity_from_user(getattr(session, "user", None))

    async def _call(self, func: Callable[..., object], *args: object) -> object:
        try:
            return await asyncio.to_thread(func, *args)
        except _AUTH_ERRORS as exc:
            raise AuthError(str(exc) or "Authentication failed") from exc


def _identity_from_user(user: object | None) -> Identity:
    if user is None:
        return Identity.signed_out()
    return Identity(
        uid=str(user.id),
        is_anonymous=bool(getattr(user, "is_anonymous", False)),
        email=getattr(user, "email", None),
    )
