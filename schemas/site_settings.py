from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class SettingsUpdate(BaseModel):
    settings: Dict[str, Any] = Field(min_length=1)


class SettingsReset(BaseModel):
    keys: Optional[List[str]] = None
    category: Optional[str] = None
    all: bool = False
