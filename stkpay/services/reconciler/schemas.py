"""Callback acknowledgement shape expected by Daraja."""

from pydantic import BaseModel, Field


class CallbackAck(BaseModel):
    result_code: int = Field(default=0, serialization_alias="ResultCode")
    result_desc: str = Field(default="Callback received successfully", serialization_alias="ResultDesc")

    def body(self) -> dict:
        return self.model_dump(by_alias=True)
