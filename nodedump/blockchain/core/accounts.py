from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator
from typing import Dict


class Account(BaseModel):
    """Account record captured at one snapshot height."""
    model_config = ConfigDict(frozen=True)

    address: bytes
    account_number: int = 0

    # denom -> amount; ordering carries no meaning, the leaf encoder sorts
    coins: Dict[str, int] = Field(default_factory=dict)

    @field_validator("address", mode="before")
    @classmethod
    def _address_from_hex(cls, v):
        if isinstance(v, str):
            if v[:2] in ("0x", "0X"):
                v = v[2:]
            return bytes.fromhex(v)
        return v

    @field_serializer("address")
    def _address_to_hex(self, v: bytes) -> str:
        return v.hex()

    def amount_of(self, denom: str) -> int:
        return self.coins.get(denom, 0)
