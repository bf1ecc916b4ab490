"""Identity models held by the session context."""
from datetime import datetime

from pydantic import BaseModel, Field


class UserMetadata(BaseModel):
    created_at: datetime | None = None
    last_sign_in_at: datetime | None = None


class User(BaseModel):
    """The signed-in identity as reported by Firebase Auth."""
    id: str = Field(..., description="Firebase Auth UID.")
    email: str = Field(..., description="Email address; also the users/{email} document id.")
    display_name: str | None = Field(None, description="Name shown to other participants.")
    metadata: UserMetadata = Field(default_factory=UserMetadata)

    def participant_entry(self) -> dict:
        """The exact map stored in a chat's ``users`` array for an active member."""
        return {"email": self.email, "name": self.display_name, "deletedFromChat": False}
