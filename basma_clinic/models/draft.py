from typing import Any, Dict

from pydantic import BaseModel, ConfigDict, Field


class Draft(BaseModel):
    """Locally persisted in-progress form input. Never written to the record store."""
    model_config = ConfigDict(populate_by_name=True)

    key: str
    data: Dict[str, Any] = Field(default_factory=dict)
    saved_at: int = Field(0, alias="savedAt")
