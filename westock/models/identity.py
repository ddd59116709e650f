from typing import Optional

from pydantic import BaseModel, ConfigDict


class UserIdentity(BaseModel):
    """
    Signed-in user as reported by the authentication provider.
    """

    uid: str  # key of the user's remote document
    email: Optional[str] = None

    model_config = ConfigDict(frozen=True)
