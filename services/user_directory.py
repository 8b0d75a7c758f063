"""
Acting user resolution.

Maps an authenticated identity to the internal user id recorded in
on_hold_set_by, created_by and audit rows.
"""
import logging
from typing import Optional

from sqlalchemy import func

from models import User

logger = logging.getLogger(__name__)


class UserDirectory:
    """Case-insensitive email lookup over the users table"""

    def resolve_acting_user_id(self, identity) -> Optional[int]:
        """
        Resolve the internal user id for an authenticated identity.

        Args:
            identity: An object with an ``email`` attribute (the logged-in
                user) or a plain email string

        Returns:
            The matching user id, or None when no user has that email
        """
        email = identity if isinstance(identity, str) else getattr(identity, 'email', None)
        if not email or not email.strip():
            return None

        user = User.query.filter(func.lower(User.email) == email.strip().lower()).first()
        if user is None:
            logger.warning("No internal user matches the acting identity; actions will be unattributed")
            return None
        return user.id
