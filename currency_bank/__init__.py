"""
Currency Bank

A virtual bank ledger for player currencies with per-coin-type balances,
an append-only history log and cron-scheduled interest payouts driven by
YAML rule files.
"""

__version__ = "1.0.0"
