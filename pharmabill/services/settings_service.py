from __future__ import annotations

import base64
import logging
import re
from typing import Optional

import pydantic

from pharmabill import errors
from pharmabill.models.settings import AppSettings, CompanyInfo
from pharmabill.storage.repo import CollectionKind, EntityRepository

logger = logging.getLogger(__name__)

PHONE_RE = re.compile(r"^\+?[0-9\s\-]{8,20}$")
MAX_LOGO_BYTES = 500 * 1024


class SettingsService:
    """Préférences d'affichage, mode de numérotation et identité de la pharmacie."""

    def __init__(self, repo: EntityRepository) -> None:
        self.repo = repo

    def get_settings(self) -> AppSettings:
        return self.repo.load(CollectionKind.SETTINGS)  # type: ignore[return-value]

    def toggle_unit_column(self) -> AppSettings:
        s = self.get_settings()
        s.show_unit_column = not s.show_unit_column
        self.repo.save(CollectionKind.SETTINGS, s)
        return s

    def toggle_manual_numbering(self) -> AppSettings:
        s = self.get_settings()
        s.manual_invoice_numbering = not s.manual_invoice_numbering
        self.repo.save(CollectionKind.SETTINGS, s)
        logger.info("Manual invoice numbering %s", "enabled" if s.manual_invoice_numbering else "disabled")
        return s

    # ---------- entreprise ---------- #

    def get_company_info(self) -> CompanyInfo:
        return self.repo.load(CollectionKind.COMPANY_INFO)  # type: ignore[return-value]

    def update_company_info(
        self,
        *,
        name: str,
        address: str,
        phone: str,
        slogan: Optional[str] = None,
        email: Optional[str] = None,
        rccm: Optional[str] = None,
    ) -> CompanyInfo:
        name, address, phone = (name or "").strip(), (address or "").strip(), (phone or "").strip()
        if not name or not address or not phone:
            raise errors.ValidationError("company name, address and phone are required")
        if not PHONE_RE.match(phone):
            raise errors.ValidationError(f"invalid phone number {phone!r}")
        if email:
            try:
                pydantic.TypeAdapter(pydantic.EmailStr).validate_python(email)
            except pydantic.ValidationError as e:
                raise errors.ValidationError(f"invalid email {email!r}") from e

        info = self.get_company_info().model_copy(update={
            "name": name,
            "address": address,
            "phone": phone,
            "slogan": slogan or None,
            "email": email or None,
            "rccm": rccm or None,
        })
        self.repo.save(CollectionKind.COMPANY_INFO, info)
        return info

    def set_logo(self, data: bytes, mime_type: str = "image/png") -> CompanyInfo:
        if len(data) > MAX_LOGO_BYTES:
            raise errors.ValidationError("logo must be smaller than 500 KB")
        if not mime_type.startswith("image/"):
            raise errors.ValidationError(f"logo must be an image, got {mime_type}")
        info = self.get_company_info()
        info.logo = f"data:{mime_type};base64,{base64.b64encode(data).decode('ascii')}"
        self.repo.save(CollectionKind.COMPANY_INFO, info)
        return info
