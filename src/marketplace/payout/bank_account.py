"""BankAccount aggregate and its commands.

A provider may register several accounts; exactly one of them is primary
once any exist. The first account registered becomes primary.
"""

from protean import handle
from protean.fields import Boolean, DateTime, Identifier, String
from protean.utils.globals import current_domain

from marketplace.domain import marketplace
from marketplace.exceptions import UnauthorizedError
from marketplace.payout.events import BankAccountAdded
from marketplace.shared.ledger import utc_now


@marketplace.aggregate
class BankAccount:
    provider_id = Identifier(required=True)
    bank_name = String(required=True, max_length=100)
    account_number = String(required=True, max_length=50)
    account_holder = String(required=True, max_length=255)
    is_primary = Boolean(default=False)
    created_at = DateTime()

    @classmethod
    def register(cls, provider_id, bank_name, account_number, account_holder, is_primary=False):
        account = cls(
            provider_id=provider_id,
            bank_name=bank_name,
            account_number=account_number,
            account_holder=account_holder,
            is_primary=is_primary,
            created_at=utc_now(),
        )
        account.raise_(
            BankAccountAdded(
                bank_account_id=str(account.id),
                provider_id=str(provider_id),
                is_primary=is_primary,
            )
        )
        return account

    @property
    def masked_number(self) -> str:
        return f"****{self.account_number[-4:]}"

    def ensure_owned_by(self, provider_id):
        if str(self.provider_id) != str(provider_id):
            raise UnauthorizedError("Bank account belongs to another provider")


@marketplace.repository(part_of=BankAccount)
class BankAccountRepository:
    def for_provider(self, provider_id) -> list[BankAccount]:
        return self._dao.query.filter(provider_id=str(provider_id)).all().items

    def primary_for(self, provider_id) -> BankAccount | None:
        return next((a for a in self.for_provider(provider_id) if a.is_primary), None)


@marketplace.command(part_of="BankAccount")
class AddBankAccount:
    provider_id = Identifier(required=True)
    bank_name = String(required=True, max_length=100)
    account_number = String(required=True, max_length=50)
    account_holder = String(required=True, max_length=255)
    make_primary = Boolean(default=False)


@marketplace.command(part_of="BankAccount")
class SetPrimaryBankAccount:
    provider_id = Identifier(required=True)
    bank_account_id = Identifier(required=True)


def _clear_primary(repo, provider_id, keep_id=None):
    for account in repo.for_provider(provider_id):
        if account.is_primary and str(account.id) != str(keep_id):
            account.is_primary = False
            repo.add(account)


@marketplace.command_handler(part_of=BankAccount)
class BankAccountHandler:
    @handle(AddBankAccount)
    def add_bank_account(self, command):
        repo = current_domain.repository_for(BankAccount)
        is_primary = command.make_primary or not repo.for_provider(command.provider_id)
        if is_primary:
            _clear_primary(repo, command.provider_id)

        account = BankAccount.register(
            provider_id=command.provider_id,
            bank_name=command.bank_name,
            account_number=command.account_number,
            account_holder=command.account_holder,
            is_primary=is_primary,
        )
        repo.add(account)
        return str(account.id)

    @handle(SetPrimaryBankAccount)
    def set_primary_bank_account(self, command):
        repo = current_domain.repository_for(BankAccount)
        account = repo.get(command.bank_account_id)
        account.ensure_owned_by(command.provider_id)

        _clear_primary(repo, command.provider_id, keep_id=account.id)
        account.is_primary = True
        repo.add(account)
