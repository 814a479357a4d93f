"""
Fixtures : un répertoire de données neuf par test (tmp_path) + services branchés dessus.
"""
from datetime import date

import pytest

from pharmabill.config import Settings
from pharmabill.errors import StorageError
from pharmabill.models.client import Client
from pharmabill.models.common import DocumentKind
from pharmabill.models.product import Product
from pharmabill.services.catalog_service import CatalogService
from pharmabill.services.client_service import ClientService
from pharmabill.services.document_service import DocumentService
from pharmabill.services.invoice_service import InvoiceService
from pharmabill.services.settings_service import SettingsService
from pharmabill.services.workflow_service import WorkflowService
from pharmabill.storage.json_repo import JsonKeyValueStore
from pharmabill.storage.repo import EntityRepository


@pytest.fixture()
def settings(tmp_path):
    return Settings(
        data_dir=tmp_path / "data",
        exports_dir=tmp_path / "exports",
        backup_keep=2,
        _env_file=None,
    )


@pytest.fixture()
def backend(settings):
    return JsonKeyValueStore(settings.data_dir, backup_keep=settings.backup_keep)


@pytest.fixture()
def repo(backend, settings):
    r = EntityRepository(backend, app_name=settings.app_name)
    r.initialize()
    return r


@pytest.fixture()
def documents(repo, settings):
    return DocumentService(repo, settings)


@pytest.fixture()
def ledger(repo, documents):
    return InvoiceService(repo, documents)


@pytest.fixture()
def workflow(repo, documents):
    return WorkflowService(repo, documents)


@pytest.fixture()
def catalog(repo):
    return CatalogService(repo)


@pytest.fixture()
def clients(repo):
    return ClientService(repo)


@pytest.fixture()
def app_settings(repo):
    return SettingsService(repo)


@pytest.fixture()
def client(clients):
    return clients.add_client(Client(name="Clinique du Plateau", phone="+225 07 00 00 01"))


@pytest.fixture()
def paracetamol():
    return Product(id="p-para", name="Paracétamol 500mg", category="Antalgiques", unit="Boîte", unit_price=1500)


@pytest.fixture()
def amoxicilline():
    return Product(id="p-amox", name="Amoxicilline 1g", category="Antibiotiques", unit="Boîte", unit_price=3500)


@pytest.fixture()
def make_document(documents, client, paracetamol):
    """Document enregistré d'une seule ligne, dont le total net vaut `total`."""

    def _make(kind=DocumentKind.PROFORMA, total=10000, discount=0):
        draft = documents.new_draft(kind)
        line = documents.add_line_item(draft, paracetamol)
        documents.update_line_item(draft, line.id, "unit_price", total + discount)
        return documents.create_document(kind, client, date(2024, 3, 1), draft.items, discount)

    return _make


class FlakyStore(JsonKeyValueStore):
    """Backend qui échoue à l'écriture d'une clé donnée (disque plein, quota...)."""

    def __init__(self, *args, fail_on=None, **kwargs):
        super().__init__(*args, **kwargs)
        self.fail_on = fail_on

    def set(self, key, raw):
        if key == self.fail_on:
            raise StorageError(f"quota exceeded on {key}")
        super().set(key, raw)


@pytest.fixture()
def flaky_store():
    return FlakyStore
