"""
Bank Command Module

User-facing /bank command:

    bank deposit <coinType> <amount>
    bank withdraw <coinType> <amount>
    bank balance <coinType>

Arguments are validated here before the ledger is called. The wallet and bank
balance checks are advisory; the ledger re-checks and has the final say.
Every outcome, including errors, comes back as a CommandResult.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Callable, Dict, List, Optional, Sequence

from .currency import CoinType, coin_type_names, parse_amount
from .errors import (
    BankError, ExternalServiceError, InsufficientFundsError, PersistenceError, ValidationError
)
from .ledger import LedgerStore
from .logging_config import get_logger
from .wallet import WalletService


@dataclass
class CommandResult:
    """Outcome of a command, shown to the player"""
    success: bool
    message: str


@dataclass
class CommandEntry:
    """Registered command: handler plus completer"""
    name: str
    handler: Callable[[str, List[str]], CommandResult]
    completer: Optional[Callable[[List[str]], List[str]]] = None
    description: str = ""
    usage: str = ""


class CommandRegistry:
    """Maps command names to their handlers"""

    def __init__(self):
        self._commands: Dict[str, CommandEntry] = {}

    def register(
        self,
        name: str,
        handler: Callable[[str, List[str]], CommandResult],
        completer: Optional[Callable[[List[str]], List[str]]] = None,
        description: str = "",
        usage: str = ""
    ) -> CommandEntry:
        entry = CommandEntry(name.lower(), handler, completer, description, usage)
        self._commands[entry.name] = entry
        return entry

    def names(self) -> List[str]:
        return sorted(self._commands)

    def get(self, name: str) -> Optional[CommandEntry]:
        return self._commands.get(name.lower())

    def dispatch(self, owner: str, line: str) -> CommandResult:
        """Split a command line and route it to its handler"""
        parts = line.strip().lstrip("/").split()
        if not parts:
            return CommandResult(False, "No command given.")

        entry = self.get(parts[0])
        if entry is None:
            return CommandResult(False, f"Unknown command: {parts[0]}")
        return entry.handler(owner, parts[1:])

    def complete(self, line: str) -> List[str]:
        """Suggestions for the last word of a partial command line"""
        parts = line.lstrip("/").split()
        if line.endswith(" ") or not parts:
            parts.append("")

        if len(parts) == 1:
            return [name for name in self.names() if name.startswith(parts[0].lower())]

        entry = self.get(parts[0])
        if entry is None or entry.completer is None:
            return []
        return entry.completer(parts[1:])


class BankCommand:
    """
    Handler and tab completer for /bank
    """

    SUBCOMMANDS = ["deposit", "withdraw", "balance"]
    USAGE = "Usage: /bank <deposit|withdraw|balance> <coinType> [amount]"
    DESCRIPTION = "Manage your virtual bank account."

    def __init__(self, ledger: LedgerStore, wallet: WalletService):
        self.ledger = ledger
        self.wallet = wallet
        self.logger = get_logger("currency_bank.commands")

    def execute(self, owner: str, args: Sequence[str]) -> CommandResult:
        """Run /bank with the given arguments"""
        args = list(args)
        if len(args) < 2:
            return CommandResult(False, self.USAGE)

        action = args[0].lower()
        if action not in self.SUBCOMMANDS:
            return CommandResult(False, "Unknown bank subcommand. Use deposit, withdraw, or balance.")

        try:
            coin_type = CoinType.parse(args[1])
            if action == "balance":
                return self._balance(owner, coin_type)

            if len(args) < 3:
                return CommandResult(False, f"Usage: /bank {action} <coinType> <amount>")
            amount = parse_amount(args[2])

            if action == "deposit":
                return self._deposit(owner, coin_type, amount)
            return self._withdraw(owner, coin_type, amount)

        except (ValidationError, InsufficientFundsError) as e:
            return CommandResult(False, str(e))
        except PersistenceError as e:
            self.logger.error(f"Bank {action} failed for {owner}: {e}")
            return CommandResult(False, "The bank is unavailable right now. Please try again later.")
        except ExternalServiceError as e:
            self.logger.error(f"Wallet call failed during bank {action} for {owner}: {e}")
            if action == "withdraw":
                return CommandResult(
                    False,
                    "Your bank was debited but your wallet could not be credited. "
                    "Please contact an administrator."
                )
            return CommandResult(False, "The wallet is unavailable right now. Please try again later.")
        except BankError as e:
            self.logger.error(f"Bank {action} failed for {owner}: {e}")
            return CommandResult(False, str(e))

    def complete(self, args: Sequence[str]) -> List[str]:
        """Suggest subcommands, then coin types"""
        args = list(args)
        if len(args) == 1:
            prefix = args[0].lower()
            return [sub for sub in self.SUBCOMMANDS if sub.startswith(prefix)]

        if len(args) == 2 and args[0].lower() in self.SUBCOMMANDS:
            prefix = args[1].lower()
            return [coin for coin in coin_type_names() if coin.startswith(prefix)]

        return []

    def _balance(self, owner: str, coin_type: CoinType) -> CommandResult:
        balance = self.ledger.get_balance(owner, coin_type)
        return CommandResult(True, f"Your bank balance for {coin_type.value} is: {balance}")

    def _deposit(self, owner: str, coin_type: CoinType, amount: Decimal) -> CommandResult:
        wallet_balance = self.wallet.get_coin(owner, coin_type)
        if wallet_balance < amount:
            return CommandResult(False, f"You do not have enough {coin_type.value} in your wallet.")

        self.ledger.deposit(owner, coin_type, amount)
        balance = self.ledger.get_balance(owner, coin_type)
        return CommandResult(
            True, f"Deposited {amount} {coin_type.value}. Bank balance: {balance}"
        )

    def _withdraw(self, owner: str, coin_type: CoinType, amount: Decimal) -> CommandResult:
        bank_balance = self.ledger.get_balance(owner, coin_type)
        if bank_balance < amount:
            return CommandResult(False, f"You do not have enough {coin_type.value} in your bank.")

        self.ledger.withdraw(owner, coin_type, amount)
        balance = self.ledger.get_balance(owner, coin_type)
        return CommandResult(
            True, f"Withdrew {amount} {coin_type.value}. Bank balance: {balance}"
        )


def register_bank_command(registry: CommandRegistry, command: BankCommand) -> CommandEntry:
    """Add /bank to a command table"""
    return registry.register(
        "bank",
        command.execute,
        completer=command.complete,
        description=BankCommand.DESCRIPTION,
        usage=BankCommand.USAGE
    )
