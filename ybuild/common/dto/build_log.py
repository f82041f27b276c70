from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class BuildLog(BaseModel):
    model_config = ConfigDict(extra="ignore")

    contents: str = Field(default="")
    uuid: Optional[str] = None

    def to_payload(self) -> str:
        return self.model_dump_json(exclude_none=True)
