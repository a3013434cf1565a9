from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

TxKind = Literal["income", "expense"]

DESCRIPTION_PLACEHOLDER = "N/A"


@dataclass(frozen=True)
class Category:
    name: str
    kind: TxKind
    icon: str


@dataclass(frozen=True)
class TransactionDraft:
    """
    Raw user input, nothing checked yet.

    amount may be text straight from a form or a number; kind is whatever the
    form carried and is never trusted.
    """

    amount: Any = None
    category: str | None = None
    date: str | None = None
    description: str | None = None
    kind: str | None = None


@dataclass(frozen=True)
class NewTransaction:
    amount: float
    kind: TxKind
    category: str
    description: str
    date: str  # YYYY-MM-DD

    def to_payload(self) -> dict[str, Any]:
        return {
            "amount": self.amount,
            "kind": self.kind,
            "category": self.category,
            "description": self.description,
            "date": self.date,
        }


class Transaction(BaseModel):
    """A transaction as the store hands it back: id and createdAt are set by the store."""

    model_config = ConfigDict(frozen=True)

    id: str
    amount: float = Field(gt=0)
    kind: TxKind
    category: str
    description: str = DESCRIPTION_PLACEHOLDER
    date: str
    createdAt: int  # unix millis, ordering only

    @property
    def month_key(self) -> str:
        return self.date[:7]
