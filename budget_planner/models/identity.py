"""
User identity as seen by the planner.

Login and logout belong to the external identity provider.
The core only needs to know whether someone is signed in and
an opaque id to scope their data by.
"""

from typing import Any, Optional

from pydantic import BaseModel


class UserIdentity(BaseModel):
    """Authenticated (or anonymous) user."""

    user_id: Optional[str] = None
    email: Optional[str] = None
    name: Optional[str] = None

    @property
    def is_authenticated(self) -> bool:
        return bool(self.user_id)

    @classmethod
    def anonymous(cls) -> "UserIdentity":
        return cls()

    @classmethod
    def from_claims(cls, claims: Any) -> "UserIdentity":
        """
        Build an identity from OIDC claims (e.g. Streamlit's st.user).

        Accepts anything with dict-style .get(); a missing or falsy
        is_logged_in yields an anonymous identity.
        """
        if not claims or not claims.get("is_logged_in", False):
            return cls.anonymous()
        return cls(
            user_id=claims.get("sub"),
            email=claims.get("email"),
            name=claims.get("name"),
        )
