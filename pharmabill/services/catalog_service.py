from __future__ import annotations

import logging
import re
from typing import Any, Dict, Iterable, List, Optional, Sequence

import pydantic

from pharmabill import errors
from pharmabill.models.product import Product
from pharmabill.storage.repo import CollectionKind, EntityRepository

logger = logging.getLogger(__name__)

_HEADER_WORDS = ("nom", "désignation", "designation")


def _parse_price(value: Any) -> int:
    """Accepte 1500, "1 500", "1500 F" ... ne garde que les chiffres. Retourne un int >= 0."""
    if value is None:
        return 0
    if isinstance(value, (int, float)):
        return max(0, int(value))
    digits = re.sub(r"[^0-9]", "", str(value))
    return int(digits) if digits else 0


def _cell(row: Sequence[Any], idx: int) -> Optional[str]:
    if idx >= len(row) or row[idx] is None:
        return None
    text = str(row[idx]).strip()
    return text or None


class CatalogService:
    """
    Catalogue produits.
    - Les lignes de documents copient nom/unité/prix au moment de l'ajout,
      modifier ou supprimer un produit ne touche donc pas les documents existants.
    """

    def __init__(self, repo: EntityRepository) -> None:
        self.repo = repo

    def list_products(self) -> List[Product]:
        return self.repo.load(CollectionKind.PRODUCTS)  # type: ignore[return-value]

    def list_active(self) -> List[Product]:
        return [p for p in self.list_products() if p.is_active]

    def get_product(self, product_id: str) -> Product:
        for p in self.list_products():
            if p.id == product_id:
                return p
        raise errors.NotFoundError(f"product {product_id} not found")

    def search(self, query: str) -> List[Product]:
        q = (query or "").strip().casefold()
        return [
            p for p in self.list_products()
            if q in p.name.casefold() or q in (p.category or "").casefold()
        ]

    def _validated(self, payload: Dict[str, Any]) -> Product:
        try:
            return Product.model_validate(payload)
        except pydantic.ValidationError as e:
            raise errors.ValidationError(f"invalid product: {e}") from e

    def add_product(self, product: Product) -> Product:
        p = self._validated(product.model_dump())
        if not p.name.strip():
            raise errors.ValidationError("product name is required")
        products = self.list_products()
        if any(x.id == p.id for x in products):
            raise errors.ValidationError(f"product with id={p.id} already exists")
        products.append(p)
        self.repo.save(CollectionKind.PRODUCTS, products)
        return p

    def update_product(self, product: Product) -> Product:
        p = self._validated(product.model_dump())
        products = self.list_products()
        for idx, existing in enumerate(products):
            if existing.id == p.id:
                products[idx] = p
                self.repo.save(CollectionKind.PRODUCTS, products)
                return p
        raise errors.NotFoundError(f"product {p.id} not found")

    def toggle_active(self, product_id: str) -> Product:
        products = self.list_products()
        for p in products:
            if p.id == product_id:
                p.is_active = not p.is_active
                self.repo.save(CollectionKind.PRODUCTS, products)
                return p
        raise errors.NotFoundError(f"product {product_id} not found")

    def delete_product(self, product_id: str) -> bool:
        products = self.list_products()
        kept = [p for p in products if p.id != product_id]
        if len(kept) == len(products):
            return False
        self.repo.save(CollectionKind.PRODUCTS, kept)
        return True

    # ---------- import tableur ---------- #

    @staticmethod
    def rows_to_products(rows: Iterable[Sequence[Any]]) -> List[Product]:
        """
        Colonnes attendues : Nom, Catégorie, Unité, Prix, Description.
        La première ligne est ignorée si c'est un en-tête (Nom / Désignation).
        """
        rows = [list(r) for r in rows]
        if not rows:
            return []
        first = str(rows[0][0] if rows[0] else "").lower()
        start = 1 if any(w in first for w in _HEADER_WORDS) else 0

        out: List[Product] = []
        for row in rows[start:]:
            name = _cell(row, 0)
            if not name:
                continue  # pas de nom → ligne sautée
            out.append(Product(
                name=name,
                category=_cell(row, 1) or "Général",
                unit=_cell(row, 2),
                unit_price=_parse_price(row[3] if len(row) > 3 else None),
                description=_cell(row, 4),
            ))
        return out

    def import_rows(self, rows: Iterable[Sequence[Any]]) -> List[Product]:
        new_products = self.rows_to_products(rows)
        if not new_products:
            raise errors.ValidationError(
                "no valid product found (expected columns: Nom, Catégorie, Unité, Prix, Description)"
            )
        products = self.list_products() + new_products
        self.repo.save(CollectionKind.PRODUCTS, products)
        logger.info("Imported %d products", len(new_products))
        return new_products
