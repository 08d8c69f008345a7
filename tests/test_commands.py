"""
Tests for the /bank command
"""

from decimal import Decimal
from unittest.mock import Mock

from currency_bank.commands import BankCommand, CommandRegistry, register_bank_command
from currency_bank.currency import CoinType
from currency_bank.errors import ExternalServiceError, PersistenceError
from currency_bank.ledger import LedgerStore
from currency_bank.storage import InMemoryStorage
from currency_bank.wallet import InMemoryWallet


class TestBankCommand:
    """Test /bank argument handling and messages"""

    def setup_method(self):
        self.wallet = InMemoryWallet({("alice", "coin"): Decimal('100')})
        self.ledger = LedgerStore(InMemoryStorage(), self.wallet)
        self.command = BankCommand(self.ledger, self.wallet)

    def test_usage(self):
        """Test too few arguments"""
        for args in ([], ["deposit"]):
            result = self.command.execute("alice", args)
            assert result.success is False
            assert result.message == "Usage: /bank <deposit|withdraw|balance> <coinType> [amount]"

    def test_unknown_subcommand(self):
        """Test an unsupported action"""
        result = self.command.execute("alice", ["transfer", "coin", "10"])
        assert result.success is False
        assert result.message == "Unknown bank subcommand. Use deposit, withdraw, or balance."

    def test_missing_amount(self):
        """Test deposit without an amount"""
        result = self.command.execute("alice", ["deposit", "coin"])
        assert result.success is False
        assert result.message == "Usage: /bank deposit <coinType> <amount>"

    def test_invalid_amount(self):
        """Test non-numeric and non-positive amounts"""
        assert self.command.execute("alice", ["deposit", "coin", "ten"]).message == \
            "Amount must be a valid number."
        assert self.command.execute("alice", ["withdraw", "coin", "0"]).message == \
            "Amount must be greater than zero."
        assert self.command.execute("alice", ["deposit", "coin", "-3"]).message == \
            "Amount must be greater than zero."

    def test_unknown_coin_type(self):
        """Test an unsupported coin type"""
        result = self.command.execute("alice", ["balance", "diamond"])
        assert result.success is False
        assert "Unknown coin type 'diamond'" in result.message

    def test_deposit_withdraw_balance(self):
        """Test the happy path through all three subcommands"""
        result = self.command.execute("alice", ["deposit", "coin", "100"])
        assert result.success is True
        assert result.message == "Deposited 100 coin. Bank balance: 100"

        result = self.command.execute("alice", ["withdraw", "COIN", "40"])
        assert result.success is True
        assert result.message == "Withdrew 40 coin. Bank balance: 60"

        result = self.command.execute("alice", ["BALANCE", "coin"])
        assert result.success is True
        assert result.message == "Your bank balance for coin is: 60"
        assert self.wallet.get_coin("alice", CoinType.COIN) == Decimal('40')

    def test_deposit_more_than_wallet(self):
        """Test the wallet check message"""
        result = self.command.execute("alice", ["deposit", "coin", "150"])
        assert result.success is False
        assert result.message == "You do not have enough coin in your wallet."
        assert self.ledger.get_balance("alice", "coin") == Decimal('0')

    def test_withdraw_more_than_bank(self):
        """Test the bank check message"""
        self.command.execute("alice", ["deposit", "coin", "10"])
        result = self.command.execute("alice", ["withdraw", "coin", "1000"])
        assert result.success is False
        assert result.message == "You do not have enough coin in your bank."

    def test_balance_without_account(self):
        """Test balance for a coin type never deposited"""
        result = self.command.execute("bob", ["balance", "gold"])
        assert result.message == "Your bank balance for gold is: 0"

    def test_storage_failure_message(self):
        """Test persistence failures become a user-facing message"""
        ledger = Mock(spec=LedgerStore)
        ledger.get_balance.side_effect = PersistenceError("database is locked")
        command = BankCommand(ledger, self.wallet)

        result = command.execute("alice", ["balance", "coin"])
        assert result.success is False
        assert result.message == "The bank is unavailable right now. Please try again later."

    def test_wallet_failure_messages(self):
        """Test wallet outages on deposit and withdraw"""
        wallet = Mock(spec=InMemoryWallet)
        wallet.get_coin.side_effect = ExternalServiceError("wallet offline")
        command = BankCommand(self.ledger, wallet)
        result = command.execute("alice", ["deposit", "coin", "5"])
        assert result.message == "The wallet is unavailable right now. Please try again later."

        self.ledger.deposit("alice", CoinType.COIN, Decimal('10'), debit_wallet=False)
        wallet.add_coin.side_effect = ExternalServiceError("wallet offline")
        ledger = LedgerStore(self.ledger.storage, wallet)
        command = BankCommand(ledger, wallet)
        result = command.execute("alice", ["withdraw", "coin", "5"])
        assert result.success is False
        assert "could not be credited" in result.message
        assert ledger.get_balance("alice", CoinType.COIN) == Decimal('5')


class TestCompletion:
    """Test tab completion"""

    def setup_method(self):
        wallet = InMemoryWallet()
        self.command = BankCommand(LedgerStore(InMemoryStorage(), wallet), wallet)

    def test_subcommands(self):
        """Test first argument completion"""
        assert self.command.complete([""]) == ["deposit", "withdraw", "balance"]
        assert self.command.complete(["w"]) == ["withdraw"]
        assert self.command.complete(["x"]) == []

    def test_coin_types(self):
        """Test second argument completion"""
        assert self.command.complete(["deposit", ""]) == ["coin", "copper", "silver", "gold"]
        assert self.command.complete(["balance", "co"]) == ["coin", "copper"]
        assert self.command.complete(["nope", "co"]) == []

    def test_no_amount_suggestions(self):
        """Test nothing is suggested for the amount"""
        assert self.command.complete(["deposit", "coin", ""]) == []


class TestCommandRegistry:
    """Test command registration and dispatch"""

    def setup_method(self):
        self.wallet = InMemoryWallet({("alice", "gold"): Decimal('3')})
        self.ledger = LedgerStore(InMemoryStorage(), self.wallet)
        self.registry = CommandRegistry()
        register_bank_command(self.registry, BankCommand(self.ledger, self.wallet))

    def test_registration(self):
        """Test /bank is registered with its usage"""
        entry = self.registry.get("BANK")
        assert self.registry.names() == ["bank"]
        assert entry.usage == BankCommand.USAGE

    def test_dispatch(self):
        """Test a full command line"""
        result = self.registry.dispatch("alice", "/bank deposit gold 3")
        assert result.success is True
        assert self.ledger.get_balance("alice", CoinType.GOLD) == Decimal('3')

    def test_dispatch_unknown(self):
        """Test unknown and empty command lines"""
        assert self.registry.dispatch("alice", "/pay bob 5").message == "Unknown command: pay"
        assert self.registry.dispatch("alice", "   ").message == "No command given."

    def test_complete_line(self):
        """Test completion from a raw command line"""
        assert self.registry.complete("/ba") == ["bank"]
        assert self.registry.complete("/bank ") == ["deposit", "withdraw", "balance"]
        assert self.registry.complete("/bank deposit s") == ["silver"]
        assert self.registry.complete("/other x") == []
