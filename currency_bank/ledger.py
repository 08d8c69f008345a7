"""
Bank Ledger Module

Owns per-owner, per-coin-type bank balances and the append-only history log.
Each deposit or withdraw writes its balance change and its history row in a
single storage transaction.

Ordering against the wallet:
- deposit debits the wallet first, then credits the bank. A failed debit
  leaves the bank untouched.
- withdraw debits the bank first, then credits the wallet. A failed credit
  leaves the bank debited; this window is logged, not reconciled.
"""

from decimal import Decimal
from datetime import datetime, timezone
from dataclasses import dataclass
from typing import Callable, List, Optional, Union
from enum import Enum

from .currency import CoinType, to_decimal
from .errors import BankError, ExternalServiceError, InsufficientFundsError, PersistenceError, ValidationError
from .logging_config import get_logger, log_action
from .storage import StorageInterface
from .wallet import WalletService


class ChangeType(Enum):
    """Kinds of balance change recorded in history"""
    DEPOSIT = "deposit"
    WITHDRAW = "withdraw"


@dataclass
class BankBalance:
    """Bank balance row for one (owner, coin type) pair"""
    bank_id: int
    owner: str
    coin_type: CoinType
    balance: Decimal
    interest_rate: Decimal
    last_interest_time: Optional[datetime]


@dataclass(frozen=True)
class HistoryEntry:
    """Immutable record of one balance-affecting operation"""
    history_id: int
    owner: str
    change_amount: Decimal
    change_type: ChangeType
    coin_type: CoinType
    note: str
    created_at: datetime


class LedgerStore:
    """
    Transactional deposit/withdraw/query operations over bank balances
    """

    def __init__(self, storage: StorageInterface, wallet: WalletService):
        self.storage = storage
        self.wallet = wallet
        self.logger = get_logger("currency_bank.ledger")

    def deposit(
        self,
        owner: str,
        coin_type: Union[str, CoinType],
        amount: Union[Decimal, str, int],
        note: Optional[str] = None,
        debit_wallet: bool = True,
        interest_rate: Optional[Decimal] = None
    ) -> HistoryEntry:
        """
        Credit the bank balance, creating the row on first deposit

        Args:
            owner: Stable player id
            coin_type: Coin type to credit
            amount: Non-negative amount
            note: History note (defaults to "Deposit")
            debit_wallet: Take the amount from the player's wallet first.
                Scheduled interest passes False and credits the bank directly.
            interest_rate: Rate that produced this credit; stamps the row's
                interest_rate and last_interest_time when given

        Returns:
            The History Entry written for this deposit

        Raises:
            ValidationError: Bad owner, coin type or amount
            InsufficientFundsError: The wallet rejected the debit
            ExternalServiceError: The wallet call failed
            PersistenceError: The bank update failed
        """
        owner = self._validate_owner(owner)
        coin_type = CoinType.parse(coin_type)
        amount = self._validate_amount(amount)

        if debit_wallet:
            self._call_wallet(self.wallet.minus_coin, owner, coin_type, amount)

        try:
            entry = self._credit(owner, coin_type, amount, note or "Deposit", interest_rate)
        except PersistenceError:
            if debit_wallet:
                self.logger.error(
                    f"Wallet debited but bank credit failed for {owner}: {amount} {coin_type.value}"
                )
            raise

        log_action(
            self.logger, "info", f"Bank deposit: {amount} {coin_type.value}",
            user_id=owner, action="deposit", resource=f"bank:{owner}:{coin_type.value}",
            extra={
                "amount": str(amount),
                "coin_type": coin_type.value,
                "history_id": entry.history_id,
                "from_wallet": debit_wallet,
                "note": entry.note
            }
        )
        return entry

    def withdraw(
        self,
        owner: str,
        coin_type: Union[str, CoinType],
        amount: Union[Decimal, str, int],
        note: Optional[str] = None
    ) -> HistoryEntry:
        """
        Debit the bank balance and credit the player's wallet

        Raises:
            ValidationError: Bad owner, coin type or amount
            InsufficientFundsError: No row, or balance below amount
            PersistenceError: The bank update failed
            ExternalServiceError: The wallet credit failed after the bank debit
        """
        owner = self._validate_owner(owner)
        coin_type = CoinType.parse(coin_type)
        amount = self._validate_amount(amount)
        now = datetime.now(timezone.utc)

        with self.storage.atomic():
            row = self.storage.load_balance(owner, coin_type.value)
            balance = Decimal(row["balance"]) if row else Decimal('0')
            if row is None or balance < amount:
                raise InsufficientFundsError(
                    f"You do not have enough {coin_type.value} in your bank."
                )

            self.storage.update_balance(owner, coin_type.value, str(balance - amount))
            entry = self._append_history(
                owner, amount, ChangeType.WITHDRAW, coin_type, note or "Withdraw", now
            )

        try:
            self._call_wallet(self.wallet.add_coin, owner, coin_type, amount)
        except ExternalServiceError:
            self.logger.error(
                f"Bank debited but wallet credit failed for {owner}: {amount} {coin_type.value} "
                f"(history {entry.history_id}); manual reconciliation required"
            )
            raise

        log_action(
            self.logger, "info", f"Bank withdraw: {amount} {coin_type.value}",
            user_id=owner, action="withdraw", resource=f"bank:{owner}:{coin_type.value}",
            extra={
                "amount": str(amount),
                "coin_type": coin_type.value,
                "history_id": entry.history_id
            }
        )
        return entry

    def get_balance(self, owner: str, coin_type: Union[str, CoinType]) -> Decimal:
        """Bank balance, or 0 when no row exists"""
        account = self.get_account(owner, coin_type)
        return account.balance if account else Decimal('0')

    def get_account(self, owner: str, coin_type: Union[str, CoinType]) -> Optional[BankBalance]:
        """Full balance row, or None when absent"""
        coin_type = CoinType.parse(coin_type)
        row = self.storage.load_balance(owner, coin_type.value)
        return self._balance_from_row(row) if row else None

    def get_history(self, owner: str, coin_type: Optional[Union[str, CoinType]] = None) -> List[HistoryEntry]:
        """History entries for an owner, oldest first"""
        coin_value = CoinType.parse(coin_type).value if coin_type is not None else None
        return [self._history_from_row(row) for row in self.storage.find_history(owner, coin_value)]

    def list_owners(self) -> List[str]:
        """Every owner with at least one bank balance row"""
        return self.storage.list_owners()

    def _credit(
        self,
        owner: str,
        coin_type: CoinType,
        amount: Decimal,
        note: str,
        interest_rate: Optional[Decimal]
    ) -> HistoryEntry:
        now = datetime.now(timezone.utc)
        stamp = now.isoformat() if interest_rate is not None else None
        rate = str(interest_rate) if interest_rate is not None else None

        with self.storage.atomic():
            row = self.storage.load_balance(owner, coin_type.value)
            if row is None:
                self.storage.insert_balance(
                    owner, coin_type.value, str(amount),
                    rate if rate is not None else "0",
                    now.isoformat()
                )
            else:
                self.storage.update_balance(
                    owner, coin_type.value, str(Decimal(row["balance"]) + amount),
                    interest_rate=rate, last_interest_time=stamp
                )
            return self._append_history(owner, amount, ChangeType.DEPOSIT, coin_type, note, now)

    def _append_history(
        self,
        owner: str,
        amount: Decimal,
        change_type: ChangeType,
        coin_type: CoinType,
        note: str,
        created_at: datetime
    ) -> HistoryEntry:
        history_id = self.storage.append_history(
            owner, str(amount), change_type.value, coin_type.value, note, created_at.isoformat()
        )
        return HistoryEntry(
            history_id=history_id,
            owner=owner,
            change_amount=amount,
            change_type=change_type,
            coin_type=coin_type,
            note=note,
            created_at=created_at
        )

    def _call_wallet(self, call: Callable, owner: str, coin_type: CoinType, amount: Decimal) -> None:
        """Invoke a wallet operation, mapping unknown failures to ExternalServiceError"""
        try:
            call(owner, coin_type, amount)
        except BankError:
            raise
        except Exception as e:
            raise ExternalServiceError(f"Wallet call failed: {e}") from e

    @staticmethod
    def _validate_owner(owner: str) -> str:
        if not isinstance(owner, str) or not owner.strip():
            raise ValidationError("Owner id must be a non-empty string")
        return owner

    @staticmethod
    def _validate_amount(amount) -> Decimal:
        amount = to_decimal(amount)
        if amount < Decimal('0'):
            raise ValidationError("Amount must not be negative")
        return amount

    @staticmethod
    def _balance_from_row(row: dict) -> BankBalance:
        last = row.get("last_interest_time")
        return BankBalance(
            bank_id=row["bank_id"],
            owner=row["uuid"],
            coin_type=CoinType(row["coin_type"]),
            balance=Decimal(row["balance"]),
            interest_rate=Decimal(row["interest_rate"]),
            last_interest_time=datetime.fromisoformat(last) if last else None
        )

    @staticmethod
    def _history_from_row(row: dict) -> HistoryEntry:
        return HistoryEntry(
            history_id=row["history_id"],
            owner=row["uuid"],
            change_amount=Decimal(row["change_amount"]),
            change_type=ChangeType(row["change_type"]),
            coin_type=CoinType(row["coin_type"]),
            note=row["note"] or "",
            created_at=datetime.fromisoformat(row["created_time"])
        )
