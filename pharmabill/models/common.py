from __future__ import annotations

import uuid
from enum import Enum

from pydantic import AliasGenerator, BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


def gen_id() -> str:
    return str(uuid.uuid4())


class Record(BaseModel):
    """
    Base des enregistrements stockés.
    - sérialisation en snake_case
    - relit aussi les anciennes sauvegardes en camelCase (clientId, unitPrice...)
    - tolère d'anciennes clés dans les JSON
    """

    model_config = ConfigDict(
        alias_generator=AliasGenerator(validation_alias=to_camel),
        populate_by_name=True,
        extra="ignore",
    )


class DocumentStatus(str, Enum):
    DRAFT = "Brouillon"
    PENDING = "En attente"
    PARTIAL = "Partiel"
    PAID = "Payée"
    CANCELLED = "Annulée"


class PaymentMode(str, Enum):
    CASH = "Espèces"
    BANK_TRANSFER = "Virement bancaire"
    MOBILE_MONEY = "Mobile Money"
    CARD = "Carte bancaire"


class DocumentKind(str, Enum):
    PROFORMA = "proforma"
    INVOICE = "invoice"
