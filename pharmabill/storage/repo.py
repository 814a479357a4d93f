from __future__ import annotations

import json
import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Union

import pydantic

from pharmabill.config import Settings, get_settings
from pharmabill.errors import ImportFormatError, StorageError
from pharmabill.models.client import Client
from pharmabill.models.document import Invoice, Proforma
from pharmabill.models.product import Product
from pharmabill.models.settings import AppSettings, CompanyInfo
from pharmabill.storage.json_repo import JsonKeyValueStore

logger = logging.getLogger(__name__)

# Permet de faire évoluer la structure sans perdre les données
DB_VERSION = "2.0"


class CollectionKind(str, Enum):
    PRODUCTS = "products"
    CLIENTS = "clients"
    PROFORMAS = "proformas"
    INVOICES = "invoices"
    SETTINGS = "settings"
    COMPANY_INFO = "company_info"


VERSION_KEY = "pn_db_version"
# si présente, les données d'usine ne sont JAMAIS réappliquées
HAS_USER_DATA_KEY = "pn_has_user_data"

COLLECTION_KEYS: Dict[CollectionKind, str] = {
    CollectionKind.PRODUCTS: "pn_products_v2",
    CollectionKind.CLIENTS: "pn_clients_v2",
    CollectionKind.PROFORMAS: "pn_proformas_v2",
    CollectionKind.INVOICES: "pn_invoices_v2",
    CollectionKind.SETTINGS: "pn_settings_v2",
    CollectionKind.COMPANY_INFO: "pn_company_info_v2",
}

ALL_KEYS: List[str] = [VERSION_KEY, *COLLECTION_KEYS.values(), HAS_USER_DATA_KEY]

_LIST_MODELS = {
    CollectionKind.PRODUCTS: Product,
    CollectionKind.CLIENTS: Client,
    CollectionKind.PROFORMAS: Proforma,
    CollectionKind.INVOICES: Invoice,
}
_SINGLE_MODELS = {
    CollectionKind.SETTINGS: AppSettings,
    CollectionKind.COMPANY_INFO: CompanyInfo,
}


def default_products() -> List[Product]:
    return [
        Product(id="1", name="Paracétamol 500mg", category="Antalgiques", unit="Boîte", unit_price=1500),
        Product(id="2", name="Amoxicilline 1g", category="Antibiotiques", unit="Boîte", unit_price=3500),
    ]


def default_company() -> CompanyInfo:
    return CompanyInfo(
        name="Pharmacie Nouvelle",
        address="Abidjan - Plateau, Avenue Jean Paul II",
        phone="+225 21 00 00 00",
        slogan="Votre santé, notre priorité.",
    )


Collection = Union[List[Any], AppSettings, CompanyInfo]


class EntityRepository:
    """
    Contrat de persistance : une collection par type d'entité, stockée comme un
    blob JSON versionné sous sa clé.

    Les écritures faites dans `transaction()` sont validées ensemble ; si l'une
    échoue, les clés déjà écrites reprennent leur valeur précédente.
    """

    def __init__(self, backend: JsonKeyValueStore, app_name: str = "Pharmacie Nouvelle") -> None:
        self.backend = backend
        self.app_name = app_name
        self._pending: Optional[Dict[str, Optional[str]]] = None

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "EntityRepository":
        s = settings or get_settings()
        backend = JsonKeyValueStore(
            s.data_dir, backup_enabled=s.backup_enabled, backup_keep=s.backup_keep
        )
        return cls(backend, app_name=s.app_name)

    # ---------------- brut ---------------- #

    def _get_raw(self, key: str) -> Optional[str]:
        if self._pending is not None and key in self._pending:
            return self._pending[key]
        return self.backend.get(key)

    def _write(self, changes: Dict[str, Optional[str]]) -> None:
        if self._pending is not None:
            self._pending.update(changes)
            return
        self._commit(changes)

    def _commit(self, changes: Dict[str, Optional[str]]) -> None:
        previous = {k: self.backend.get(k) for k in changes}
        written: List[str] = []
        try:
            for key, raw in changes.items():
                if raw is None:
                    self.backend.delete(key)
                else:
                    self.backend.set(key, raw)
                written.append(key)
        except StorageError:
            for key in reversed(written):
                try:
                    if previous[key] is None:
                        self.backend.delete(key)
                    else:
                        self.backend.set(key, previous[key])
                except StorageError:
                    logger.error("Rollback of %s failed, storage is inconsistent", key)
            raise

    @contextmanager
    def transaction(self) -> Iterator["EntityRepository"]:
        if self._pending is not None:
            # transaction imbriquée : rejoint la transaction en cours
            yield self
            return
        self._pending = {}
        try:
            yield self
        except BaseException:
            self._pending = None
            raise
        changes, self._pending = self._pending, None
        if changes:
            self._commit(changes)

    # ---------------- collections ---------------- #

    @property
    def has_user_data(self) -> bool:
        return self._get_raw(HAS_USER_DATA_KEY) == "true"

    def _default(self, kind: CollectionKind) -> Collection:
        if kind in _SINGLE_MODELS:
            return _SINGLE_MODELS[kind]()
        return []

    def load(self, kind: CollectionKind) -> Collection:
        key = COLLECTION_KEYS[kind]
        raw = self._get_raw(key)
        if raw is None:
            return self._default(kind)
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.warning("Unreadable %s (%s), using defaults", key, e)
            self.backend.set_aside_corrupt(key)
            return self._default(kind)

        if kind in _SINGLE_MODELS:
            if not isinstance(data, dict):
                return self._default(kind)
            try:
                return _SINGLE_MODELS[kind].model_validate(data)
            except pydantic.ValidationError as e:
                logger.warning("Invalid %s, using defaults: %s", key, e)
                return self._default(kind)

        model = _LIST_MODELS[kind]
        out: List[Any] = []
        for row in data if isinstance(data, list) else []:
            try:
                out.append(model.model_validate(row))
            except pydantic.ValidationError as e:
                # on ignore les entrées invalides pour ne pas casser les listes
                logger.warning("Skipping invalid %s entry: %s", kind.value, e)
        return out

    def save(self, kind: CollectionKind, collection: Collection) -> None:
        if kind in _SINGLE_MODELS:
            payload: Any = collection.model_dump(mode="json")  # type: ignore[union-attr]
        else:
            payload = [item.model_dump(mode="json") for item in collection]  # type: ignore[union-attr]
        raw = json.dumps(payload, ensure_ascii=False, indent=2)
        self._write({COLLECTION_KEYS[kind]: raw, HAS_USER_DATA_KEY: "true"})

    def initialize(self) -> bool:
        """Charge les données d'usine UNIQUEMENT si le stockage n'a jamais servi."""
        if self.has_user_data:
            return False
        logger.warning("First launch: seeding factory defaults")
        with self.transaction():
            self.save(CollectionKind.PRODUCTS, default_products())
            self.save(CollectionKind.COMPANY_INFO, default_company())
            self.save(CollectionKind.CLIENTS, [])
            self.save(CollectionKind.PROFORMAS, [])
            self.save(CollectionKind.INVOICES, [])
            self.save(CollectionKind.SETTINGS, AppSettings())
            self._write({VERSION_KEY: DB_VERSION})
        return True

    # ---------------- sauvegarde complète ---------------- #

    def export_all(self) -> str:
        data = {key: self._get_raw(key) for key in ALL_KEYS}
        return json.dumps(
            {
                "appName": self.app_name,
                "db_version": DB_VERSION,
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "data": data,
            },
            ensure_ascii=False,
            indent=2,
        )

    def import_all(self, text: Union[str, bytes]) -> bool:
        """
        Remplace TOUTES les données par celles de la sauvegarde (pas de fusion).
        Tout est vérifié avant la première écriture : pas de restauration partielle.
        """
        try:
            wrapper = json.loads(text)
        except (TypeError, ValueError) as e:
            raise ImportFormatError(f"backup is not valid JSON: {e}") from e
        if not isinstance(wrapper, dict):
            raise ImportFormatError("backup must be a JSON object")
        backup = wrapper["data"] if "data" in wrapper else wrapper
        if not isinstance(backup, dict):
            raise ImportFormatError("backup 'data' must be a JSON object")
        if not any(backup.get(k) is not None for k in COLLECTION_KEYS.values()):
            raise ImportFormatError("backup contains no known collection")

        changes: Dict[str, Optional[str]] = {}
        for kind, key in COLLECTION_KEYS.items():
            value = backup.get(key)
            if value is None:
                changes[key] = None
                continue
            if isinstance(value, (list, dict)):
                value = json.dumps(value, ensure_ascii=False)
            if not isinstance(value, str):
                raise ImportFormatError(f"{key} must be a JSON string")
            try:
                parsed = json.loads(value)
            except ValueError as e:
                raise ImportFormatError(f"{key} is not valid JSON: {e}") from e
            expected = dict if kind in _SINGLE_MODELS else list
            if not isinstance(parsed, expected):
                raise ImportFormatError(f"{key} must hold a JSON {expected.__name__}")
            try:
                if kind in _SINGLE_MODELS:
                    normalized: Any = _SINGLE_MODELS[kind].model_validate(parsed).model_dump(mode="json")
                else:
                    model = _LIST_MODELS[kind]
                    normalized = [model.model_validate(row).model_dump(mode="json") for row in parsed]
            except pydantic.ValidationError as e:
                raise ImportFormatError(f"{key} holds an invalid record: {e}") from e
            # réécrit au format courant (snake_case, montants recalculés)
            changes[key] = json.dumps(normalized, ensure_ascii=False, indent=2)

        version = backup.get(VERSION_KEY)
        changes[VERSION_KEY] = version if isinstance(version, str) else DB_VERSION
        changes[HAS_USER_DATA_KEY] = "true"
        self._write(changes)
        logger.info("Backup restored (%s)", wrapper.get("timestamp", "no timestamp"))
        return True

    def reset_all(self) -> None:
        logger.warning("Wiping every stored collection")
        self._write({key: None for key in ALL_KEYS})
