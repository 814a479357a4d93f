from __future__ import annotations

import logging
from datetime import datetime
from typing import List, Optional, Union

from pharmabill import errors
from pharmabill.models.common import DocumentKind, DocumentStatus, PaymentMode
from pharmabill.models.document import Invoice, Payment, ensure_transition
from pharmabill.services.document_service import DocumentService
from pharmabill.storage.repo import EntityRepository

logger = logging.getLogger(__name__)


class InvoiceService:
    """
    Encaissements sur facture. L'historique des paiements ne fait que croître :
    aucune modification ni suppression de paiement n'est exposée.
    """

    def __init__(self, repo: EntityRepository, documents: Optional[DocumentService] = None):
        self.repo = repo
        self.documents = documents or DocumentService(repo)

    def list_invoices(self) -> List[Invoice]:
        return self.documents.list_invoices()

    def list_unpaid(self) -> List[Invoice]:
        return [
            i for i in self.list_invoices()
            if i.status not in (DocumentStatus.PAID, DocumentStatus.CANCELLED)
        ]

    def list_payments(self, invoice_id: str) -> List[Payment]:
        return list(self.documents.get_invoice(invoice_id).payments)

    @staticmethod
    def _coerce_mode(mode: Union[PaymentMode, str]) -> PaymentMode:
        if isinstance(mode, PaymentMode):
            return mode
        try:
            return PaymentMode(mode)
        except ValueError:
            try:
                return PaymentMode[str(mode).upper()]
            except KeyError:
                raise errors.InvalidPaymentError(f"unknown payment mode {mode!r}") from None

    def apply_payment(
        self,
        invoice: Union[Invoice, str],
        amount: int,
        mode: Union[PaymentMode, str] = PaymentMode.CASH,
        at: Optional[datetime] = None,
    ) -> Payment:
        """
        Enregistre un paiement : refuse montant <= 0 ou supérieur au solde,
        puis recalcule solde et statut (Payée dès que le solde est nul).
        """
        # on travaille toujours sur la version stockée
        inv = self.documents.get_invoice(invoice if isinstance(invoice, str) else invoice.id)

        if isinstance(amount, bool) or not isinstance(amount, int):
            raise errors.InvalidPaymentError(f"payment amount must be an integer, got {amount!r}")
        if amount <= 0:
            raise errors.InvalidPaymentError("payment amount must be positive")
        if inv.status in (DocumentStatus.PAID, DocumentStatus.CANCELLED):
            raise errors.InvalidPaymentError(f"invoice {inv.number} is {inv.status.value}, no payment accepted")
        if amount > inv.balance:
            raise errors.InvalidPaymentError(
                f"payment {amount} exceeds balance {inv.balance} of invoice {inv.number}"
            )
        pay_mode = self._coerce_mode(mode)

        payment = Payment(amount=amount, mode=pay_mode, invoice_id=inv.id, date=at or datetime.now())
        inv.payments.append(payment)
        new_status = inv.settled_status()
        ensure_transition(DocumentKind.INVOICE, inv.status, new_status)
        inv.status = new_status

        self.documents.update_document(inv)
        if isinstance(invoice, Invoice) and invoice is not inv:
            invoice.payments = list(inv.payments)
            invoice.status = inv.status
        logger.info(
            "Payment of %s (%s) on %s, balance now %s",
            amount, pay_mode.value, inv.number, inv.balance,
        )
        return payment
