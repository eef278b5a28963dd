"""The device's login session, as seen by the sync code."""

from dataclasses import dataclass
from typing import Protocol


class SessionProvider(Protocol):
    """Read access to the signed-in user. Storage lives elsewhere."""

    def current_user_id(self) -> int | None: ...

    def access_token(self) -> str | None: ...


@dataclass
class StaticSession:
    """A session fixed at construction time, e.g. from command-line options."""

    user_id: int | None = None
    token: str | None = None

    def current_user_id(self) -> int | None:
        return self.user_id

    def access_token(self) -> str | None:
        return self.token
