from __future__ import annotations

import logging
from typing import Optional, Union

from pharmabill import errors
from pharmabill.models.common import DocumentKind, DocumentStatus
from pharmabill.models.document import Invoice, Proforma, ensure_transition
from pharmabill.services.document_service import COLLECTIONS, DocumentService
from pharmabill.storage.repo import EntityRepository

logger = logging.getLogger(__name__)


class WorkflowService:
    """
    Sorties d'une proforma "En attente" (toutes deux irréversibles) :
    - transformation en facture : convertedToInvoiceId renseigné + statut Payée
      (signal d'archivage de la proforma, pas du paiement de la facture)
    - paiement direct : statut Payée, sans facture
    """

    def __init__(self, repo: EntityRepository, documents: Optional[DocumentService] = None):
        self.repo = repo
        self.documents = documents or DocumentService(repo)

    def _resolve(self, proforma: Union[Proforma, str]) -> Proforma:
        return self.documents.get_proforma(proforma if isinstance(proforma, str) else proforma.id)

    @staticmethod
    def _sync(target: Union[Proforma, str], stored: Proforma) -> None:
        if isinstance(target, Proforma) and target is not stored:
            target.status = stored.status
            target.converted_to_invoice_id = stored.converted_to_invoice_id

    def convert_to_invoice(self, proforma: Union[Proforma, str]) -> Invoice:
        p = self._resolve(proforma)
        if p.converted_to_invoice_id:
            raise errors.InvalidTransitionError(
                f"proforma {p.number} was already converted to invoice {p.converted_to_invoice_id}"
            )
        ensure_transition(DocumentKind.PROFORMA, p.status, DocumentStatus.PAID)

        invoices = self.documents.list_invoices()
        inv = Invoice(
            number=self.documents.next_number(DocumentKind.INVOICE, invoices),
            client_id=p.client_id,
            client_name=p.client_name,
            date=p.date,
            items=[it.model_copy(deep=True) for it in p.items],
            discount=p.discount,
            status=DocumentStatus.PARTIAL,
            proforma_id=p.id,
        )

        p.converted_to_invoice_id = inv.id
        p.status = DocumentStatus.PAID

        # facture + proforma écrites ensemble, ou pas du tout
        with self.repo.transaction():
            self.repo.save(COLLECTIONS[DocumentKind.INVOICE], [*invoices, inv])
            self.documents.update_document(p)
        self._sync(proforma, p)

        logger.info("Proforma %s converted to invoice %s", p.number, inv.number)
        return inv

    def mark_proforma_paid_directly(self, proforma: Union[Proforma, str]) -> Proforma:
        p = self._resolve(proforma)
        if p.converted_to_invoice_id:
            raise errors.InvalidTransitionError(f"proforma {p.number} was already converted")
        ensure_transition(DocumentKind.PROFORMA, p.status, DocumentStatus.PAID)
        p.status = DocumentStatus.PAID
        self.documents.update_document(p)
        self._sync(proforma, p)
        logger.info("Proforma %s marked as paid directly", p.number)
        return p
