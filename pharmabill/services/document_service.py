from __future__ import annotations

import logging
from datetime import date
from typing import Any, Dict, Iterable, List, Optional, Union

import pydantic

from pharmabill import errors
from pharmabill.config import Settings, get_settings
from pharmabill.formatters import generate_number, parse_number_sequence
from pharmabill.models.client import Client
from pharmabill.models.common import DocumentKind, DocumentStatus
from pharmabill.models.document import (
    DOCUMENT_MODELS,
    Document,
    Invoice,
    LineItem,
    Proforma,
    ensure_transition,
)
from pharmabill.models.product import Product
from pharmabill.models.settings import AppSettings
from pharmabill.storage.repo import CollectionKind, EntityRepository

logger = logging.getLogger(__name__)

COLLECTIONS: Dict[DocumentKind, CollectionKind] = {
    DocumentKind.PROFORMA: CollectionKind.PROFORMAS,
    DocumentKind.INVOICE: CollectionKind.INVOICES,
}

INITIAL_STATUS: Dict[DocumentKind, DocumentStatus] = {
    DocumentKind.PROFORMA: DocumentStatus.PENDING,
    # même à total nul : une facture naît "Partielle"
    DocumentKind.INVOICE: DocumentStatus.PARTIAL,
}


def normalize_number(number: Optional[str]) -> str:
    return (number or "").strip().upper()


class DocumentService:
    """
    Cycle de vie des proformas et factures : brouillon, lignes, numérotation,
    création, modification, annulation, suppression.
    """

    def __init__(self, repo: EntityRepository, settings: Optional[Settings] = None) -> None:
        self.repo = repo
        s = settings or get_settings()
        self.prefixes = {
            DocumentKind.PROFORMA: s.proforma_prefix,
            DocumentKind.INVOICE: s.invoice_prefix,
        }

    # ----- Lecture ----- #

    def list_documents(self, kind: DocumentKind) -> List[Document]:
        return self.repo.load(COLLECTIONS[kind])  # type: ignore[return-value]

    def list_proformas(self) -> List[Proforma]:
        return self.list_documents(DocumentKind.PROFORMA)  # type: ignore[return-value]

    def list_invoices(self) -> List[Invoice]:
        return self.list_documents(DocumentKind.INVOICE)  # type: ignore[return-value]

    def get_document(self, kind: DocumentKind, doc_id: str) -> Document:
        for d in self.list_documents(kind):
            if d.id == doc_id:
                return d
        raise errors.NotFoundError(f"{kind.value} {doc_id} not found")

    def get_proforma(self, doc_id: str) -> Proforma:
        return self.get_document(DocumentKind.PROFORMA, doc_id)  # type: ignore[return-value]

    def get_invoice(self, doc_id: str) -> Invoice:
        return self.get_document(DocumentKind.INVOICE, doc_id)  # type: ignore[return-value]

    def search(self, kind: DocumentKind, query: str) -> List[Document]:
        q = (query or "").strip().casefold()
        return [
            d for d in self.list_documents(kind)
            if q in d.number.casefold() or q in d.client_name.casefold()
        ]

    def pending_proformas(self) -> List[Proforma]:
        return [p for p in self.list_proformas() if not p.is_archived]

    def archived_proformas(self) -> List[Proforma]:
        """Converties en facture ou payées directement."""
        return [p for p in self.list_proformas() if p.is_archived]

    # ----- Brouillon & lignes ----- #

    def new_draft(self, kind: DocumentKind) -> Document:
        return DOCUMENT_MODELS[kind]()

    def add_line_item(self, document: Document, product: Product) -> LineItem:
        if not product.is_active:
            raise errors.ValidationError(f"product {product.name} is inactive")
        return document.add_line_item(product)

    def update_line_item(self, document: Document, line_id: str, field: str, value: Any) -> LineItem:
        return document.update_line_item(line_id, field, value)

    def remove_line_item(self, document: Document, line_id: str) -> LineItem:
        return document.remove_line_item(line_id)

    # ----- Numérotation ----- #

    def next_number(
        self,
        kind: DocumentKind,
        documents: Optional[List[Document]] = None,
        year: Optional[int] = None,
    ) -> str:
        """
        Numéro suivant = nombre de documents + 1, sans jamais reprendre un numéro
        existant (cas d'une suppression suivie d'une création).
        """
        docs = self.list_documents(kind) if documents is None else documents
        prefix = self.prefixes[kind]
        year = year or date.today().year
        taken = {normalize_number(d.number) for d in docs}

        seq = len(docs)
        for d in docs:
            n = parse_number_sequence(d.number, prefix, year)
            if n is not None and n > seq:
                seq = n
        candidate = generate_number(prefix, seq, year)
        while candidate.upper() in taken:
            seq += 1
            candidate = generate_number(prefix, seq, year)
        return candidate

    def _app_settings(self) -> AppSettings:
        return self.repo.load(CollectionKind.SETTINGS)  # type: ignore[return-value]

    def _allocate_number(self, kind: DocumentKind, docs: List[Document], number: Optional[str]) -> str:
        manual = kind == DocumentKind.INVOICE and self._app_settings().manual_invoice_numbering
        if not manual:
            if number is not None:
                raise errors.ValidationError("manual numbering is disabled for this document")
            return self.next_number(kind, docs)

        wanted = normalize_number(number)
        if not wanted:
            raise errors.ValidationError("an invoice number is required in manual numbering mode")
        if any(normalize_number(d.number) == wanted for d in docs):
            raise errors.DuplicateNumberError(wanted)
        return wanted

    # ----- Validation ----- #

    @staticmethod
    def _copy_items(items: Iterable[Union[LineItem, Dict[str, Any]]]) -> List[LineItem]:
        out: List[LineItem] = []
        try:
            for it in items:
                data = it.model_dump() if isinstance(it, LineItem) else dict(it)
                out.append(LineItem.model_validate(data))
        except pydantic.ValidationError as e:
            raise errors.ValidationError(f"invalid line item: {e}") from e
        return out

    def _validate(
        self,
        client: Optional[Client],
        items: Iterable[Union[LineItem, Dict[str, Any]]],
        discount: int,
    ) -> List[LineItem]:
        if client is None:
            raise errors.ValidationError("a client is required")
        lines = self._copy_items(items or [])
        if not lines:
            raise errors.ValidationError("at least one line item is required")
        if isinstance(discount, bool) or not isinstance(discount, int) or discount < 0:
            raise errors.ValidationError(f"invalid discount {discount!r}")
        subtotal = sum(it.total for it in lines)
        if discount > subtotal:
            raise errors.ValidationError(f"discount {discount} exceeds subtotal {subtotal}")
        return lines

    # ----- CRUD ----- #

    def create_document(
        self,
        kind: DocumentKind,
        client: Optional[Client],
        date_: Optional[Union[date, str]] = None,
        items: Iterable[Union[LineItem, Dict[str, Any]]] = (),
        discount: int = 0,
        number: Optional[str] = None,
    ) -> Document:
        lines = self._validate(client, items, discount)
        docs = self.list_documents(kind)
        doc_number = self._allocate_number(kind, docs, number)

        status = INITIAL_STATUS[kind]
        ensure_transition(kind, DocumentStatus.DRAFT, status)
        try:
            doc = DOCUMENT_MODELS[kind].model_validate({
                "number": doc_number,
                "client_id": client.id,  # type: ignore[union-attr]
                "client_name": client.name,  # type: ignore[union-attr]
                "date": date_ or date.today(),
                "discount": discount,
                "status": status,
            })
        except pydantic.ValidationError as e:
            raise errors.ValidationError(f"invalid {kind.value}: {e}") from e
        doc.items = lines

        docs.append(doc)
        self.repo.save(COLLECTIONS[kind], docs)
        logger.info("Created %s %s for %s (total %s)", kind.value, doc.number, doc.client_name, doc.total)
        return doc

    def create_proforma(self, client: Optional[Client], date_=None, items=(), discount: int = 0) -> Proforma:
        return self.create_document(DocumentKind.PROFORMA, client, date_, items, discount)  # type: ignore[return-value]

    def create_invoice(self, client: Optional[Client], date_=None, items=(), discount: int = 0,
                       number: Optional[str] = None) -> Invoice:
        return self.create_document(DocumentKind.INVOICE, client, date_, items, discount, number)  # type: ignore[return-value]

    @staticmethod
    def _content(doc: Document) -> Dict[str, Any]:
        return doc.model_dump(include={"client_id", "client_name", "date", "items", "discount"})

    def _check_update(self, existing: Document, updated: Document) -> None:
        """
        Règles communes à toute réécriture d'un document stocké :
        document clos non modifiable, montants cohérents, paiements en ajout seul,
        statut facture recalculé, transitions autorisées uniquement.
        """
        kind = existing.kind
        content_changed = self._content(existing) != self._content(updated)
        if isinstance(existing, Invoice) and isinstance(updated, Invoice):
            old_ids = [p.id for p in existing.payments]
            if [p.id for p in updated.payments[:len(old_ids)]] != old_ids:
                raise errors.ValidationError(f"payments of invoice {existing.number} cannot be modified or removed")
            content_changed = content_changed or len(updated.payments) != len(old_ids)

        if content_changed and existing.is_locked:
            raise errors.ValidationError(f"{kind.value} {existing.number} is closed and cannot be edited")
        if updated.number != existing.number:
            raise errors.ValidationError(f"the number of {kind.value} {existing.number} cannot change")

        if content_changed:
            if not updated.items:
                raise errors.ValidationError("at least one line item is required")
            if updated.discount > updated.subtotal:
                raise errors.ValidationError(f"discount {updated.discount} exceeds subtotal {updated.subtotal}")

        if isinstance(existing, Proforma) and isinstance(updated, Proforma):
            if existing.converted_to_invoice_id and updated.converted_to_invoice_id != existing.converted_to_invoice_id:
                raise errors.InvalidTransitionError(f"proforma {existing.number} conversion cannot be undone")

        if isinstance(updated, Invoice) and updated.status != DocumentStatus.CANCELLED:
            if updated.total < updated.paid_amount:
                raise errors.ValidationError(
                    f"new total {updated.total} is below the amount already paid ({updated.paid_amount})"
                )
            updated.status = updated.settled_status()

        if updated.status != existing.status:
            ensure_transition(kind, existing.status, updated.status)

    def edit_document(
        self,
        kind: DocumentKind,
        doc_id: str,
        client: Optional[Client],
        date_: Optional[Union[date, str]] = None,
        items: Iterable[Union[LineItem, Dict[str, Any]]] = (),
        discount: int = 0,
    ) -> Document:
        """Le numéro d'origine est conservé ; une facture garde ses paiements."""
        docs = self.list_documents(kind)
        idx = next((i for i, d in enumerate(docs) if d.id == doc_id), None)
        if idx is None:
            raise errors.NotFoundError(f"{kind.value} {doc_id} not found")
        existing = docs[idx]
        if existing.is_locked:
            raise errors.ValidationError(f"{kind.value} {existing.number} is closed and cannot be edited")

        lines = self._validate(client, items, discount)
        updated = existing.model_copy(update={
            "client_id": client.id,  # type: ignore[union-attr]
            "client_name": client.name,  # type: ignore[union-attr]
            "date": existing.date if date_ is None else pydantic.TypeAdapter(date).validate_python(date_),
            "items": lines,
            "discount": discount,
        })
        self._check_update(existing, updated)

        docs[idx] = updated
        self.repo.save(COLLECTIONS[kind], docs)
        logger.info("Updated %s %s", kind.value, updated.number)
        return updated

    def update_document(self, document: Document) -> Document:
        """Remplace la version stockée du document (même id), après contrôle des règles de modification."""
        kind = document.kind
        docs = self.list_documents(kind)
        for idx, d in enumerate(docs):
            if d.id == document.id:
                self._check_update(d, document)
                docs[idx] = document
                self.repo.save(COLLECTIONS[kind], docs)
                return document
        raise errors.NotFoundError(f"{kind.value} {document.id} not found")

    def cancel_document(self, kind: DocumentKind, doc_id: str) -> Document:
        doc = self.get_document(kind, doc_id)
        ensure_transition(kind, doc.status, DocumentStatus.CANCELLED)
        doc.status = DocumentStatus.CANCELLED
        self.update_document(doc)
        logger.info("Cancelled %s %s", kind.value, doc.number)
        return doc

    def delete_document(self, kind: DocumentKind, doc_id: str) -> bool:
        # pas de cascade : une facture issue d'une proforma supprimée garde son proforma_id
        docs = self.list_documents(kind)
        kept = [d for d in docs if d.id != doc_id]
        if len(kept) == len(docs):
            return False
        self.repo.save(COLLECTIONS[kind], kept)
        logger.info("Deleted %s %s", kind.value, doc_id)
        return True
