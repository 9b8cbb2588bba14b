"""Error taxonomy shared by the core and its adapters."""

from __future__ import annotations


class KudosError(Exception):
    """Base class for all kudosbot errors."""


class DecodeError(KudosError):
    """Envelope payload does not have the shape expected for its type."""


class UnknownTenantError(KudosError):
    """Operation referenced a workspace that has never been installed."""

    user_message = (
        "This workspace is not set up for kudos yet. "
        "Please reinstall the app to get started."
    )

    def __init__(self, team_id: str) -> None:
        super().__init__(f"workspace not set up: {team_id}")
        self.team_id = team_id


class CredentialError(KudosError):
    """Credentials could not be exchanged or refreshed."""


class TransportError(KudosError):
    """The live event stream for a workspace failed."""


class SendError(KudosError):
    """An outbound message could not be delivered."""
