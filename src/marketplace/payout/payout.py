"""Payout aggregate: a provider's withdrawal of earned revenue.

pending -> completed | rejected. Pending and completed payouts both count
against the available balance; a rejection gives the amount back.

Each payout takes the next numbered ledger slot of its provider. The slot is
unique in storage, so two workers that read the same balance cannot both
insert a payout on top of it: the second insert is rejected.
"""

from enum import Enum

from protean.exceptions import InvalidOperationError, ValidationError
from protean.fields import DateTime, Float, Identifier, String, Text

from marketplace.domain import marketplace
from marketplace.payout.events import PayoutCompleted, PayoutRejected, PayoutRequested
from marketplace.shared.ledger import round_money, utc_now


class PayoutStatus(Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    REJECTED = "rejected"


@marketplace.aggregate
class Payout:
    provider_id = Identifier(required=True)
    bank_account_id = Identifier(required=True)
    amount = Float(required=True, min_value=0.0)
    status = String(choices=PayoutStatus, default=PayoutStatus.PENDING.value)
    notes = Text()
    rejection_reason = String(max_length=500)
    external_reference = String(max_length=255)
    requested_at = DateTime()
    processed_at = DateTime()
    ledger_slot = String(max_length=100, unique=True)  # "<provider_id>:<sequence>"

    @classmethod
    def request(cls, provider_id, bank_account_id, amount, notes=None, sequence=None):
        now = utc_now()
        payout = cls(
            provider_id=provider_id,
            bank_account_id=bank_account_id,
            amount=round_money(amount),
            status=PayoutStatus.PENDING.value,
            notes=notes,
            requested_at=now,
            ledger_slot=f"{provider_id}:{sequence}" if sequence else None,
        )
        payout.raise_(
            PayoutRequested(
                payout_id=str(payout.id),
                provider_id=str(provider_id),
                bank_account_id=str(bank_account_id),
                amount=payout.amount,
                requested_at=now,
            )
        )
        return payout

    @property
    def counts_against_balance(self) -> bool:
        return PayoutStatus(self.status) != PayoutStatus.REJECTED

    def _ensure_pending(self):
        if PayoutStatus(self.status) != PayoutStatus.PENDING:
            raise InvalidOperationError(f"Payout is already {self.status}")

    def complete(self, external_reference=None):
        self._ensure_pending()
        now = utc_now()
        self.status = PayoutStatus.COMPLETED.value
        self.external_reference = external_reference
        self.processed_at = now
        self.raise_(
            PayoutCompleted(
                payout_id=str(self.id),
                provider_id=str(self.provider_id),
                amount=self.amount,
                completed_at=now,
            )
        )

    def reject(self, reason):
        self._ensure_pending()
        if not reason or not reason.strip():
            raise ValidationError({"rejection_reason": ["A reason is required to reject a payout"]})
        now = utc_now()
        self.status = PayoutStatus.REJECTED.value
        self.rejection_reason = reason
        self.processed_at = now
        self.raise_(
            PayoutRejected(
                payout_id=str(self.id),
                provider_id=str(self.provider_id),
                amount=self.amount,
                reason=reason,
                rejected_at=now,
            )
        )


@marketplace.repository(part_of=Payout)
class PayoutRepository:
    def for_provider(self, provider_id) -> list[Payout]:
        payouts = self._dao.query.filter(provider_id=str(provider_id)).all().items
        return sorted(payouts, key=lambda p: p.requested_at, reverse=True)

    def next_sequence(self, provider_id) -> int:
        return self._dao.query.filter(provider_id=str(provider_id)).all().total + 1
