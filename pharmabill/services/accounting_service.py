from __future__ import annotations
from datetime import date
from typing import Optional

from pharmabill.models.common import DocumentStatus
from pharmabill.models.stats import DashboardStats
from pharmabill.services.document_service import DocumentService
from pharmabill.storage.repo import EntityRepository


class AccountingService:
    """Chiffres du tableau de bord, calculés à la volée depuis les factures."""

    def __init__(self, repo: EntityRepository, documents: Optional[DocumentService] = None):
        self.repo = repo
        self.documents = documents or DocumentService(repo)

    def get_stats(self, today: Optional[date] = None) -> DashboardStats:
        today = today or date.today()
        invoices = self.documents.list_invoices()
        live = [i for i in invoices if i.status != DocumentStatus.CANCELLED]

        return DashboardStats(
            daily_turnover=sum(i.total for i in live if i.date == today),
            monthly_turnover=sum(
                i.total for i in live if (i.date.year, i.date.month) == (today.year, today.month)
            ),
            total_collected=sum(i.paid_amount for i in invoices),
            # une facture annulée ne doit plus rien
            total_remaining=sum(i.balance for i in live),
            invoice_count=len(invoices),
        )
