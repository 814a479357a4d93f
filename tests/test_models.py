import pytest

from pharmabill import errors
from pharmabill.models.client import Client
from pharmabill.models.common import DocumentKind, DocumentStatus, PaymentMode
from pharmabill.models.document import (
    TRANSITIONS,
    Invoice,
    LineItem,
    Payment,
    Proforma,
    can_transition,
    ensure_transition,
)


def test_line_item_total_follows_quantity_and_price(paracetamol):
    line = LineItem.from_product(paracetamol)
    assert line.total == 1500
    line.quantity = 3
    assert line.total == 4500
    line.unit_price = 1000
    assert line.total == 3000


def test_line_item_snapshots_product(paracetamol):
    line = LineItem.from_product(paracetamol)
    paracetamol.name = "Doliprane"
    paracetamol.unit_price = 9999
    assert line.product_name == "Paracétamol 500mg"
    assert line.product_unit == "Boîte"
    assert line.unit_price == 1500


def test_add_line_item_merges_same_product(paracetamol, amoxicilline):
    doc = Proforma()
    doc.add_line_item(paracetamol)
    doc.add_line_item(paracetamol)
    doc.add_line_item(amoxicilline)
    assert len(doc.items) == 2
    assert doc.items[0].quantity == 2
    assert doc.items[0].total == 3000
    assert doc.subtotal == 3000 + 3500


def test_update_line_item_clamps_quantity(paracetamol, amoxicilline):
    doc = Proforma()
    line = doc.add_line_item(paracetamol)
    other = doc.add_line_item(amoxicilline)

    doc.update_line_item(line.id, "quantity", 0)
    assert line.quantity == 1
    doc.update_line_item(line.id, "quantity", -4)
    assert line.quantity == 1
    doc.update_line_item(line.id, "quantity", "abc")
    assert line.quantity == 1
    doc.update_line_item(line.id, "quantity", "5")
    assert line.quantity == 5
    assert line.total == 7500
    assert other.quantity == 1 and other.total == 3500


def test_update_line_item_price_and_unknown_field(paracetamol):
    doc = Proforma()
    line = doc.add_line_item(paracetamol)
    doc.update_line_item(line.id, "unit_price", 2000)
    assert line.total == 2000
    doc.update_line_item(line.id, "unitPrice", -10)
    assert line.unit_price == 0
    with pytest.raises(errors.ValidationError):
        doc.update_line_item(line.id, "product_name", "x")
    with pytest.raises(errors.NotFoundError):
        doc.update_line_item("missing", "quantity", 2)


def test_remove_line_item_recomputes_totals(paracetamol, amoxicilline):
    doc = Proforma(discount=500)
    a = doc.add_line_item(paracetamol)
    doc.add_line_item(amoxicilline)
    assert doc.total == 5000 - 500
    doc.remove_line_item(a.id)
    assert [it.product_id for it in doc.items] == ["p-amox"]
    assert doc.subtotal == 3500
    assert doc.total == 3000


def test_invoice_balance_and_paid_amount(paracetamol):
    inv = Invoice(id="i1", status=DocumentStatus.PARTIAL)
    inv.add_line_item(paracetamol)
    assert inv.paid_amount == 0 and inv.balance == 1500
    inv.payments.append(Payment(amount=1000, invoice_id="i1"))
    assert inv.paid_amount == 1000 and inv.balance == 500
    assert inv.settled_status() == DocumentStatus.PARTIAL
    inv.payments.append(Payment(amount=500, mode=PaymentMode.CARD, invoice_id="i1"))
    assert inv.balance == 0
    assert inv.settled_status() == DocumentStatus.PAID


def test_zero_total_invoice_without_payment_stays_partial():
    assert Invoice().settled_status() == DocumentStatus.PARTIAL


def test_dump_contains_derived_amounts(paracetamol):
    inv = Invoice(number="INV-2024-00001", discount=100)
    inv.add_line_item(paracetamol)
    data = inv.model_dump(mode="json")
    assert data["subtotal"] == 1500
    assert data["total"] == 1400
    assert data["balance"] == 1400
    assert data["items"][0]["total"] == 1500
    assert data["status"] == "Brouillon"


def test_legacy_camel_case_records_are_read():
    inv = Invoice.model_validate({
        "id": "INV-1",
        "number": "INV-2024-00001",
        "clientId": "c1",
        "clientName": "Mme Koné",
        "date": "2024-03-01",
        "items": [{"id": "l1", "productId": "1", "productName": "Paracétamol", "quantity": 2,
                   "unitPrice": 1500, "total": 3000}],
        "discount": 0,
        "subtotal": 3000,
        "total": 3000,
        "status": "Partiel",
        "paidAmount": 1000,
        "balance": 2000,
        "payments": [{"id": "p1", "date": "2024-03-02T10:00:00.000Z", "amount": 1000,
                      "mode": "Mobile Money", "invoiceId": "INV-1"}],
    })
    assert inv.client_name == "Mme Koné"
    assert inv.items[0].unit_price == 1500
    assert inv.paid_amount == 1000
    assert inv.balance == 2000
    assert inv.payments[0].mode == PaymentMode.MOBILE_MONEY


def test_client_blank_email_becomes_none():
    c = Client(name="Pharma Sud", phone="0102030405", email="", address="  ")
    assert c.email is None and c.address is None


def test_proforma_archived_flag():
    assert not Proforma(status=DocumentStatus.PENDING).is_archived
    assert Proforma(status=DocumentStatus.PAID).is_archived
    assert Proforma(status=DocumentStatus.PENDING, converted_to_invoice_id="x").is_archived


@pytest.mark.parametrize("kind", list(DocumentKind))
def test_transition_table_covers_every_status(kind):
    assert set(TRANSITIONS[kind]) == set(DocumentStatus)


def test_transitions():
    P, I = DocumentKind.PROFORMA, DocumentKind.INVOICE
    assert can_transition(P, DocumentStatus.PENDING, DocumentStatus.PAID)
    assert can_transition(P, DocumentStatus.PENDING, DocumentStatus.CANCELLED)
    assert not can_transition(P, DocumentStatus.PAID, DocumentStatus.PENDING)
    assert can_transition(I, DocumentStatus.PARTIAL, DocumentStatus.PAID)
    assert not can_transition(I, DocumentStatus.PAID, DocumentStatus.PARTIAL)
    with pytest.raises(errors.InvalidTransitionError):
        ensure_transition(I, DocumentStatus.CANCELLED, DocumentStatus.PAID)


def test_line_changes_keep_total_non_negative(paracetamol, amoxicilline):
    doc = Proforma(discount=3000)
    a = doc.add_line_item(paracetamol)
    b = doc.add_line_item(amoxicilline)

    with pytest.raises(errors.ValidationError):
        doc.remove_line_item(b.id)
    with pytest.raises(errors.ValidationError):
        doc.update_line_item(b.id, "unit_price", 1000)
    assert [it.id for it in doc.items] == [a.id, b.id]
    assert b.unit_price == 3500
    assert doc.total == 2000

    doc.remove_line_item(a.id)
    assert doc.total == 500


def test_locked_documents_refuse_line_changes(paracetamol):
    for doc in (Proforma(status=DocumentStatus.PAID), Invoice(status=DocumentStatus.CANCELLED)):
        with pytest.raises(errors.ValidationError):
            doc.add_line_item(paracetamol)
    assert Invoice(status=DocumentStatus.PAID).is_locked
    assert not Invoice(status=DocumentStatus.PARTIAL).is_locked


def test_legacy_zero_quantity_lines_are_dropped():
    inv = Invoice.model_validate({
        "id": "INV-1",
        "items": [
            {"id": "l1", "productId": "1", "productName": "Paracétamol", "quantity": 0, "unitPrice": 1500},
            {"id": "l2", "productId": "2", "productName": "Amoxicilline", "quantity": "2", "unitPrice": 3500},
        ],
        "status": "Partiel",
    })
    assert [it.id for it in inv.items] == ["l2"]
    assert inv.total == 7000
