from typing import Optional

from pydantic import EmailStr, Field, field_validator

from .common import Record, gen_id


class Client(Record):
    id: str = Field(default_factory=gen_id)
    name: str
    phone: str = ""
    email: Optional[EmailStr] = None
    address: Optional[str] = None

    @field_validator("email", "address", mode="before")
    @classmethod
    def _blank_to_none(cls, v):
        # les formulaires envoient "" pour un champ vide
        if isinstance(v, str) and not v.strip():
            return None
        return v
