"""
Configuration de l'application (variables d'environnement PHARMABILL_*, fichier .env).

Les préférences modifiables par l'utilisateur (colonne unité, numérotation manuelle,
identité de la pharmacie) ne sont pas ici : elles sont stockées avec les données.
"""
from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="PHARMABILL_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app_name: str = "Pharmacie Nouvelle"

    # Stockage
    data_dir: Path = Path("./data")
    exports_dir: Path = Path("./exports")
    backup_enabled: bool = True
    backup_keep: int = Field(default=5, ge=0)

    # Documents
    currency_suffix: str = "Frcs CFA"
    proforma_prefix: str = "PRO"
    invoice_prefix: str = "INV"

    # PDF (sinon recherche dans le PATH)
    wkhtmltopdf_path: Optional[str] = None

    log_level: str = "INFO"


@lru_cache()
def get_settings() -> Settings:
    return Settings()
