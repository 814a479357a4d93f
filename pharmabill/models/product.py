from __future__ import annotations
from pydantic import Field
from typing import Optional
from .common import Record, gen_id


class Product(Record):
  id: str = Field(default_factory=gen_id)
  name: str
  category: str = "Général"
  unit: Optional[str] = None
  unit_price: int = Field(default=0, ge=0)  # Frcs CFA, pas de sous-unité
  description: Optional[str] = None
  is_active: bool = True
