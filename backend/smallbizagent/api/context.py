"""Application context for API requests.

Combines the authenticated session, logging, and request metadata into a single
injectable dependency.
"""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict

from smallbizagent.core.logging import ContextualLogger


class ApiContext(BaseModel):
    """Context for HTTP API requests.

    The session itself is owned by the authentication middleware in front of this
    service; the context only records who is calling and how.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    # Request metadata
    request_id: str

    # Authentication context
    user: Optional[Any] = None
    auth_method: str  # "session", "system"
    is_admin: bool = False

    # Contextual logger with all dimensions pre-configured
    logger: ContextualLogger

    @property
    def user_identity(self) -> Optional[str]:
        """Display identity of the user, if any."""
        if self.user is None:
            return None
        return getattr(self.user, "identity", None) or getattr(self.user, "display_name", None)

    def __str__(self) -> str:
        """String representation for logging."""
        return (
            f"ApiContext(request_id={self.request_id[:8]}..., "
            f"method={self.auth_method}, user={self.user_identity})"
        )
