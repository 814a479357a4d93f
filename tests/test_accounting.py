from datetime import date

from pharmabill.models.common import DocumentKind
from pharmabill.services.accounting_service import AccountingService

TODAY = date(2024, 3, 1)


def test_empty_dashboard(repo):
    stats = AccountingService(repo).get_stats(TODAY)
    assert stats.invoice_count == 0
    assert stats.total_collected == stats.total_remaining == 0


def test_dashboard_figures(repo, documents, ledger, make_document, client, paracetamol):
    a = make_document(DocumentKind.INVOICE, total=10000)   # 01/03/2024
    b = make_document(DocumentKind.INVOICE, total=4000)
    cancelled = make_document(DocumentKind.INVOICE, total=7000)
    documents.cancel_document(DocumentKind.INVOICE, cancelled.id)
    make_document(DocumentKind.PROFORMA, total=50000)

    draft = documents.new_draft(DocumentKind.INVOICE)
    documents.add_line_item(draft, paracetamol)
    documents.create_invoice(client, date(2024, 2, 10), draft.items)  # mois précédent : 1500

    ledger.apply_payment(a, 2500)
    ledger.apply_payment(b, 4000)

    stats = AccountingService(repo, documents).get_stats(TODAY)
    assert stats.daily_turnover == 14000
    assert stats.monthly_turnover == 14000
    assert stats.total_collected == 6500
    assert stats.total_remaining == 7500 + 1500
    assert stats.invoice_count == 4
