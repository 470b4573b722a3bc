from typing import Optional

from pydantic import BaseModel, Field


class ClientLocationRequest(BaseModel):
    """GPS position reported by the browser after the visitor allows it."""
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    accuracy: Optional[float] = Field(default=None, ge=0)
    source: str = Field(default="browser-gps", max_length=64)
