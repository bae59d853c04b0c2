"""Domain models for authentication identity."""

from dataclasses import dataclass


@dataclass(frozen=True)
class Identity:
    """The active authentication identity."""

    uid: str | None
    is_anonymous: bool = False
    email: str | None = None

    @classmethod
    def signed_out(cls) -> "Identity":
        """Return the identity used when nobody is signed in."""
        return cls(uid=None, is_anonymous=False)

    @property
    def is_authenticated(self) -> bool:
        """Return True when a uid is present."""
        return self.uid is not None

    @property
    def can_browse_calendar(self) -> bool:
        """Return True for permanent (non-anonymous) accounts."""
        return self.uid is not None and not self.is_anonymous
