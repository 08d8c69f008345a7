"""
Interest Engine Module

Applies one interest rule unit to every known account. Each rule credits
amount * rate / 100 straight into the bank balance through the ledger's
deposit operation; the player's wallet is not touched.
"""

from dataclasses import dataclass, field
from typing import Callable, Iterable, List, Optional

from .errors import BankError
from .ledger import LedgerStore
from .logging_config import get_logger, log_action
from .rules import InterestRule, InterestRuleUnit


@dataclass
class InterestRunResult:
    """Outcome of applying one unit once"""
    unit: str
    credited: int = 0
    failed: int = 0
    errors: List[str] = field(default_factory=list)


def interest_note(rule: InterestRule, unit: InterestRuleUnit) -> str:
    """History note identifying a scheduled interest credit"""
    return (
        f"Scheduled interest: {rule.interest_rate}% on {rule.amount} "
        f"{rule.coin_type.value} ({unit.name})"
    )


class InterestEngine:
    """
    Credits scheduled interest for all accounts
    """

    def __init__(
        self,
        ledger: LedgerStore,
        owner_source: Optional[Callable[[], Iterable[str]]] = None
    ):
        self.ledger = ledger
        # Known account identities; defaults to owners with a bank row
        self.owner_source = owner_source or ledger.list_owners
        self.logger = get_logger("currency_bank.interest")

    def apply_unit(self, unit: InterestRuleUnit) -> InterestRunResult:
        """
        Apply every rule in the unit to every known account

        A failure for one account/rule is logged and the rest still run.
        """
        result = InterestRunResult(unit=unit.name)

        try:
            owners = list(self.owner_source())
        except BankError as e:
            self.logger.error(f"Cannot list accounts for interest unit {unit.name}: {e}")
            result.errors.append(str(e))
            return result

        for owner in owners:
            for rule in unit.rules:
                if self._credit(owner, rule, unit, result):
                    result.credited += 1
                else:
                    result.failed += 1

        log_action(
            self.logger, "info", f"Interest unit applied: {unit.name}",
            action="apply_interest", resource=f"interest:{unit.name}",
            extra={
                "accounts": len(owners),
                "rules": len(unit.rules),
                "credited": result.credited,
                "failed": result.failed
            }
        )
        return result

    def _credit(self, owner: str, rule: InterestRule, unit: InterestRuleUnit, result: InterestRunResult) -> bool:
        interest = rule.interest
        try:
            self.ledger.deposit(
                owner, rule.coin_type, interest,
                note=interest_note(rule, unit),
                debit_wallet=False,
                interest_rate=rule.interest_rate
            )
        except BankError as e:
            self.logger.error(
                f"Failed to apply {interest} {rule.coin_type.value} interest to {owner} "
                f"from {unit.name}: {e}"
            )
            result.errors.append(f"{owner}/{rule.key}: {e}")
            return False

        self.logger.info(f"Applied {interest} {rule.coin_type.value} interest to {owner}")
        return True
