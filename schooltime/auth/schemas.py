from uuid import UUID

from pydantic import BaseModel


class CurrentUser(BaseModel):
    """Lightweight representation of the authenticated user for role and school checks."""

    id: UUID
    school_id: UUID
    role: str
    email: str
