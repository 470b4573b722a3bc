from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class LocalUser(BaseModel):
    """Local mirror of an account created through the signup form."""
    id: Optional[str] = None
    username: str
    password_hash: str
    created_at: Optional[datetime] = None
