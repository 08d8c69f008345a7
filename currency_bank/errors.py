"""
Bank Error Types

Domain-specific exceptions for the bank ledger and the interest scheduler.
User-facing surfaces turn these into handled results; background jobs log them.
"""


class BankError(Exception):
    """Base class for every error raised by the bank subsystem"""
    pass


class ValidationError(BankError):
    """
    Raised when a request is malformed:
    - Non-numeric, negative or non-finite amount.
    - Unknown coin type, owner or subcommand.
    """
    pass


class InsufficientFundsError(BankError):
    """
    Raised when a wallet or bank balance cannot cover the requested amount.
    The balance is left unchanged.
    """
    pass


class RuleUnitError(BankError):
    """Base class for problems reading an interest rule unit"""
    pass


class ScheduleParseError(RuleUnitError):
    """Raised when a cron schedule expression cannot be parsed"""
    pass


class ConfigParseError(RuleUnitError):
    """Raised when an interest rule file is unreadable or malformed"""
    pass


class PersistenceError(BankError):
    """Raised when the persistence backend fails during a read or write"""
    pass


class ExternalServiceError(BankError):
    """Raised when a Wallet Service call fails"""
    pass
