"""
Caller identity.

The Auth Gate (api/deps.py) resolves the bearer token once per request and
hands an Identity down to every service call. Services never look up the
caller on their own.
"""
from dataclasses import dataclass
from typing import Any, Mapping


@dataclass(frozen=True)
class Identity:
    """Authenticated caller, bound to the session that authenticated it."""
    user_id: str
    email: str
    session_id: str

    @classmethod
    def from_session_row(cls, row: Mapping[str, Any]) -> "Identity":
        return cls(
            user_id=str(row["user_id"]),
            email=row["email"],
            session_id=str(row["session_id"]),
        )
