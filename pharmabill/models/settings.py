from __future__ import annotations
from typing import Optional

from .common import Record


class AppSettings(Record):
    show_unit_column: bool = True
    manual_invoice_numbering: bool = False


class CompanyInfo(Record):
    name: str = ""
    address: str = ""
    phone: str = ""
    slogan: Optional[str] = None
    email: Optional[str] = None
    rccm: Optional[str] = None  # registre du commerce
    logo: Optional[str] = None  # data URL base64
