"""Payout requests and staff processing."""

import structlog
from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Boolean, Float, Identifier, String, Text
from protean.utils.globals import current_domain

from marketplace.domain import marketplace
from marketplace.exceptions import ConcurrentUpdateError, InsufficientBalanceError, InvalidAmountError
from marketplace.payout.bank_account import BankAccount
from marketplace.payout.payout import Payout
from marketplace.payout.summary import get_payout_summary
from marketplace.shared.ledger import round_money

logger = structlog.get_logger(__name__)


@marketplace.command(part_of="Payout")
class RequestPayout:
    provider_id = Identifier(required=True)
    amount = Float(required=True)
    bank_account_id = Identifier()  # Defaults to the primary account
    notes = Text()


@marketplace.command(part_of="Payout")
class ProcessPayout:
    payout_id = Identifier(required=True)
    approve = Boolean(required=True)
    rejection_reason = String(max_length=500)
    external_reference = String(max_length=255)


def _payout_account(provider_id, bank_account_id) -> BankAccount:
    repo = current_domain.repository_for(BankAccount)
    if bank_account_id:
        account = repo.get(bank_account_id)
        account.ensure_owned_by(provider_id)
        return account

    account = repo.primary_for(provider_id)
    if account is None:
        raise ValidationError({"bank_account_id": ["Register a bank account before requesting a payout"]})
    return account


@marketplace.command_handler(part_of=Payout)
class PayoutHandler:
    @handle(RequestPayout)
    def request_payout(self, command):
        if command.amount is None or command.amount <= 0:
            raise InvalidAmountError()

        account = _payout_account(command.provider_id, command.bank_account_id)
        summary = get_payout_summary(command.provider_id)
        if round_money(command.amount) > summary.available_balance:
            raise InsufficientBalanceError(
                provider_id=str(command.provider_id),
                requested=command.amount,
                available=summary.available_balance,
            )

        repo = current_domain.repository_for(Payout)
        payout = Payout.request(
            command.provider_id,
            account.id,
            command.amount,
            command.notes,
            sequence=repo.next_sequence(command.provider_id),
        )
        try:
            repo.add(payout)
        except ValidationError as exc:
            if "ledger_slot" not in exc.messages:
                raise
            logger.warning(
                "Payout lost the race for its ledger slot",
                provider_id=str(command.provider_id),
                ledger_slot=payout.ledger_slot,
            )
            raise ConcurrentUpdateError(provider_id=str(command.provider_id)) from exc
        logger.info(
            "Payout requested",
            payout_id=str(payout.id),
            provider_id=str(command.provider_id),
            amount=payout.amount,
            available_before=summary.available_balance,
        )
        return str(payout.id)

    @handle(ProcessPayout)
    def process_payout(self, command):
        repo = current_domain.repository_for(Payout)
        payout = repo.get(command.payout_id)
        if command.approve:
            payout.complete(command.external_reference)
        else:
            payout.reject(command.rejection_reason)
        repo.add(payout)
        logger.info("Payout processed", payout_id=str(payout.id), status=payout.status)
        return payout.status
