from __future__ import annotations

import datetime as dt
from typing import ClassVar, Dict, FrozenSet, List, Optional

from pydantic import Field, computed_field, field_validator

from pharmabill import errors
from .common import DocumentKind, DocumentStatus, PaymentMode, Record, gen_id
from .product import Product

S = DocumentStatus

# Statuts atteignables depuis chaque statut, par type de document.
TRANSITIONS: Dict[DocumentKind, Dict[DocumentStatus, FrozenSet[DocumentStatus]]] = {
    DocumentKind.PROFORMA: {
        S.DRAFT: frozenset({S.PENDING, S.CANCELLED}),
        S.PENDING: frozenset({S.PAID, S.CANCELLED}),
        S.PARTIAL: frozenset(),
        S.PAID: frozenset(),
        S.CANCELLED: frozenset(),
    },
    DocumentKind.INVOICE: {
        S.DRAFT: frozenset({S.PARTIAL, S.PAID, S.CANCELLED}),
        S.PENDING: frozenset({S.PARTIAL, S.PAID, S.CANCELLED}),
        S.PARTIAL: frozenset({S.PARTIAL, S.PAID, S.CANCELLED}),
        S.PAID: frozenset(),
        S.CANCELLED: frozenset(),
    },
}

for _kind, _table in TRANSITIONS.items():
    _missing = set(DocumentStatus) - set(_table)
    if _missing:
        raise RuntimeError(f"transition table for {_kind.value} misses {sorted(s.name for s in _missing)}")


def can_transition(kind: DocumentKind, current: DocumentStatus, target: DocumentStatus) -> bool:
    return target in TRANSITIONS[kind][current]


def ensure_transition(kind: DocumentKind, current: DocumentStatus, target: DocumentStatus) -> None:
    if not can_transition(kind, current, target):
        raise errors.InvalidTransitionError(
            f"{kind.value} cannot move from {current.name} to {target.name}"
        )


class LineItem(Record):
    id: str = Field(default_factory=gen_id)
    product_id: str
    product_name: str
    product_unit: Optional[str] = None
    quantity: int = Field(default=1, ge=1)
    unit_price: int = Field(default=0, ge=0)

    @computed_field
    @property
    def total(self) -> int:
        return self.quantity * self.unit_price

    @classmethod
    def from_product(cls, product: Product) -> "LineItem":
        # copie figée : renommer le produit plus tard ne modifie pas les documents
        return cls(
            product_id=product.id,
            product_name=product.name,
            product_unit=product.unit,
            quantity=1,
            unit_price=product.unit_price,
        )


def _to_int(value, default: Optional[int]) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


class Document(Record):
    kind: ClassVar[DocumentKind]

    id: str = Field(default_factory=gen_id)
    number: str = ""
    client_id: str = ""
    client_name: str = ""
    date: dt.date = Field(default_factory=dt.date.today)
    items: List[LineItem] = Field(default_factory=list)
    discount: int = Field(default=0, ge=0)
    status: DocumentStatus = DocumentStatus.DRAFT

    @field_validator("items", mode="before")
    @classmethod
    def _drop_empty_lines(cls, v):
        # anciennes sauvegardes : une ligne à quantité 0 ne pèse rien dans le total
        if isinstance(v, list):
            return [
                it for it in v
                if not (isinstance(it, dict) and _to_int(it.get("quantity"), None) == 0)
            ]
        return v

    @computed_field
    @property
    def subtotal(self) -> int:
        return sum(it.total for it in self.items)

    @computed_field
    @property
    def total(self) -> int:
        return self.subtotal - self.discount

    @property
    def is_locked(self) -> bool:
        return self.status == DocumentStatus.CANCELLED

    # ---------- lignes ---------- #

    def _ensure_open(self) -> None:
        if self.is_locked:
            raise errors.ValidationError(f"{self.kind.value} {self.number or self.id} is closed, lines cannot change")

    def _check_subtotal(self, subtotal: int) -> None:
        if self.discount > subtotal:
            raise errors.ValidationError(f"discount {self.discount} would exceed subtotal {subtotal}")

    def _lines_changed(self) -> None:
        pass

    def find_line(self, line_id: str) -> LineItem:
        for it in self.items:
            if it.id == line_id:
                return it
        raise errors.NotFoundError(f"line {line_id} not found on {self.number or 'draft'}")

    def add_line_item(self, product: Product) -> LineItem:
        """Un produit déjà présent voit sa quantité augmenter : jamais de ligne en double."""
        self._ensure_open()
        for it in self.items:
            if it.product_id == product.id:
                it.quantity += 1
                self._lines_changed()
                return it
        line = LineItem.from_product(product)
        self.items.append(line)
        self._lines_changed()
        return line

    def update_line_item(self, line_id: str, field: str, value) -> LineItem:
        self._ensure_open()
        line = self.find_line(line_id)
        if field == "quantity":
            quantity, unit_price = max(1, _to_int(value, 1)), line.unit_price
        elif field in ("unit_price", "unitPrice"):
            quantity, unit_price = line.quantity, max(0, _to_int(value, 0))
        else:
            raise errors.ValidationError(f"cannot update line field {field!r}")
        self._check_subtotal(self.subtotal - line.total + quantity * unit_price)
        line.quantity, line.unit_price = quantity, unit_price
        self._lines_changed()
        return line

    def remove_line_item(self, line_id: str) -> LineItem:
        self._ensure_open()
        line = self.find_line(line_id)
        self._check_subtotal(self.subtotal - line.total)
        self.items = [it for it in self.items if it.id != line_id]
        self._lines_changed()
        return line


class Proforma(Document):
    kind: ClassVar[DocumentKind] = DocumentKind.PROFORMA

    converted_to_invoice_id: Optional[str] = None

    @property
    def is_archived(self) -> bool:
        return bool(self.converted_to_invoice_id) or self.status == DocumentStatus.PAID

    @property
    def is_locked(self) -> bool:
        return self.is_archived or self.status == DocumentStatus.CANCELLED


class Payment(Record):
    id: str = Field(default_factory=gen_id)
    date: dt.datetime = Field(default_factory=dt.datetime.now)
    amount: int = Field(gt=0)
    mode: PaymentMode = PaymentMode.CASH
    invoice_id: str


class Invoice(Document):
    kind: ClassVar[DocumentKind] = DocumentKind.INVOICE

    payments: List[Payment] = Field(default_factory=list)
    proforma_id: Optional[str] = None

    @computed_field
    @property
    def paid_amount(self) -> int:
        return sum(p.amount for p in self.payments)

    @computed_field
    @property
    def balance(self) -> int:
        return max(0, self.total - self.paid_amount)

    @property
    def is_locked(self) -> bool:
        return self.status in (DocumentStatus.PAID, DocumentStatus.CANCELLED)

    def _check_subtotal(self, subtotal: int) -> None:
        super()._check_subtotal(subtotal)
        if subtotal - self.discount < self.paid_amount:
            raise errors.ValidationError(
                f"total {subtotal - self.discount} would fall below the amount already paid ({self.paid_amount})"
            )

    def _lines_changed(self) -> None:
        if self.status != DocumentStatus.DRAFT:
            self.status = self.settled_status()

    def settled_status(self) -> DocumentStatus:
        """Payée dès que le solde tombe à zéro après encaissement, sinon Partielle."""
        if self.paid_amount > 0 and self.balance <= 0:
            return DocumentStatus.PAID
        return DocumentStatus.PARTIAL


DOCUMENT_MODELS = {
    DocumentKind.PROFORMA: Proforma,
    DocumentKind.INVOICE: Invoice,
}
