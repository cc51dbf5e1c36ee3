# api/slipparser/parsers/record.py
from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict


@dataclass(frozen=True)
class Party:
    name: str = ""
    account_number: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "account_number": self.account_number}


@dataclass(frozen=True)
class Payee(Party):
    """Recipient; merchant/QR payments also carry biller identifiers."""

    biller_id: str = ""
    store_code: str = ""
    transaction_code: str = ""

    @property
    def is_merchant(self) -> bool:
        return bool(self.biller_id or self.store_code or self.transaction_code)

    def to_dict(self) -> Dict[str, Any]:
        out = super().to_dict()
        out.update(
            biller_id=self.biller_id,
            store_code=self.store_code,
            transaction_code=self.transaction_code,
        )
        return out


@dataclass(frozen=True)
class SlipRecord:
    bank_from: str = ""
    bank_to: str = ""
    status: str = ""
    date_time_text: str = ""
    date_time_iso: str = ""
    sender: Party = field(default_factory=Party)
    recipient: Payee = field(default_factory=Payee)
    amount: Decimal = Decimal("0")
    fee: Decimal = Decimal("0")
    currency: str = "THB"
    transaction_reference: str = ""
    reference_number: str = ""
    reference_code: str = ""
    qr_code: str = ""

    def to_dict(self) -> Dict[str, Any]:
        """JSON-ready shape; keys are never None, money is emitted as float."""
        return {
            "bank_from": self.bank_from,
            "bank_to": self.bank_to,
            "status": self.status,
            "date_time_text": self.date_time_text,
            "date_time_iso": self.date_time_iso,
            "from": self.sender.to_dict(),
            "to": self.recipient.to_dict(),
            "amount": float(self.amount),
            "fee": float(self.fee),
            "currency": self.currency,
            "transaction_reference": self.transaction_reference,
            "reference_number": self.reference_number,
            "reference_code": self.reference_code,
            "qr_code": self.qr_code,
        }


__all__ = ["Party", "Payee", "SlipRecord"]
