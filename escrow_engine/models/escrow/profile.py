"""Profile model for escrow domain."""

from dataclasses import dataclass, field
from datetime import datetime

from escrow_engine.models.escrow.enums import Role


@dataclass
class Profile:
    """Registered user with a global role set."""

    profile_id: str
    display_name: str
    email: str
    created_at: datetime
    roles: set[Role] = field(default_factory=set)
