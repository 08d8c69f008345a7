"""
FastAPI REST API Module

Wires the bank components together and exposes balance, deposit, withdraw,
history and /bank command endpoints over HTTP. Runs on port 8090.
"""

from datetime import datetime, timedelta, timezone
from typing import Callable, Iterable, List, Optional
from zoneinfo import ZoneInfo
from fastapi import FastAPI, HTTPException, Depends
from pydantic import BaseModel, Field
import uvicorn

from .commands import BankCommand, CommandRegistry, register_bank_command
from .config import BankConfig, get_config
from .currency import parse_amount
from .errors import BankError, ExternalServiceError, PersistenceError
from .interest import InterestEngine
from .ledger import HistoryEntry, LedgerStore
from .logging_config import get_logger
from .rules import discover_rule_files, write_example_config
from .scheduler import InterestScheduler
from .storage import InMemoryStorage, SQLiteStorage, StorageInterface
from .wallet import HttpWalletClient, InMemoryWallet, WalletService

logger = get_logger("currency_bank.api")


# Pydantic models for API requests
class AmountRequest(BaseModel):
    coin_type: str = Field(..., description="Coin type (coin, copper, silver, gold)")
    amount: str = Field(..., description="Decimal amount as string")


class CommandRequest(BaseModel):
    args: List[str] = Field(default_factory=list, description="Arguments after /bank")


# Bank System Context
class BankSystem:
    """Bank components initialized from configuration"""

    def __init__(
        self,
        config: Optional[BankConfig] = None,
        storage: Optional[StorageInterface] = None,
        wallet: Optional[WalletService] = None,
        owner_source: Optional[Callable[[], Iterable[str]]] = None
    ):
        self.config = config or get_config()
        cfg = self.config

        # Initialize storage
        if storage is None:
            storage = SQLiteStorage(cfg.database_path) if cfg.use_sqlite else InMemoryStorage()
        self.storage = storage

        # Initialize wallet boundary
        if wallet is None:
            if cfg.wallet_url:
                wallet = HttpWalletClient(cfg.wallet_url, timeout=cfg.wallet_timeout,
                                          api_key=cfg.wallet_api_key or None)
            else:
                wallet = InMemoryWallet()
        self.wallet = wallet

        # Initialize core components
        self.ledger = LedgerStore(self.storage, self.wallet)
        # Host-supplied account identities; defaults to owners with a bank row
        self.interest_engine = InterestEngine(self.ledger, owner_source=owner_source)
        self.scheduler = InterestScheduler(
            self.interest_engine,
            cfg.interest_config_dir,
            period=timedelta(hours=cfg.interest_period_hours),
            fallback_delay=timedelta(seconds=cfg.interest_fallback_delay_seconds),
            recurring_cron=cfg.interest_recurring_cron,
            max_workers=cfg.scheduler_max_workers,
            timezone=ZoneInfo(cfg.scheduler_timezone) if cfg.scheduler_timezone else None
        )
        self.bank_command = BankCommand(self.ledger, self.wallet)
        self.commands = CommandRegistry()
        register_bank_command(self.commands, self.bank_command)

    def start(self) -> None:
        """Write the example rule file if needed and start the interest scheduler"""
        if self.config.create_example_config and not discover_rule_files(self.config.interest_config_dir):
            write_example_config(self.config.interest_config_dir)
        self.scheduler.start()

    def close(self) -> None:
        self.scheduler.shutdown()
        if isinstance(self.wallet, HttpWalletClient):
            self.wallet.close()
        self.storage.close()


# Global bank system instance, created on first use
bank_system: Optional[BankSystem] = None


# Create FastAPI app
app = FastAPI(
    title="Currency Bank API",
    description="Virtual bank ledger with scheduled interest",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)


# Dependency to get bank system
def get_bank_system() -> BankSystem:
    global bank_system
    if bank_system is None:
        bank_system = BankSystem()
    return bank_system


def _http_error(error: BankError) -> HTTPException:
    if isinstance(error, ExternalServiceError):
        return HTTPException(status_code=502, detail=str(error))
    if isinstance(error, PersistenceError):
        logger.error(f"Persistence failure: {error}")
        return HTTPException(status_code=503, detail="Bank storage unavailable")
    return HTTPException(status_code=400, detail=str(error))


def _history_to_dict(entry: HistoryEntry) -> dict:
    return {
        "history_id": entry.history_id,
        "change_amount": str(entry.change_amount),
        "change_type": entry.change_type.value,
        "coin_type": entry.coin_type.value,
        "note": entry.note,
        "created_at": entry.created_at.isoformat()
    }


# Health check endpoint
@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {"status": "healthy", "timestamp": datetime.now(timezone.utc).isoformat()}


# Bank endpoints run in the threadpool because storage and wallet calls block
@app.get("/bank/{owner}/balance/{coin_type}")
def get_balance(owner: str, coin_type: str, system: BankSystem = Depends(get_bank_system)):
    """Get bank balance for one coin type"""
    try:
        balance = system.ledger.get_balance(owner, coin_type)
    except BankError as e:
        raise _http_error(e)
    return {"owner": owner, "coin_type": coin_type.lower(), "balance": str(balance)}


@app.post("/bank/{owner}/deposit")
def deposit(owner: str, request: AmountRequest, system: BankSystem = Depends(get_bank_system)):
    """Move currency from the wallet into the bank"""
    try:
        entry = system.ledger.deposit(owner, request.coin_type, parse_amount(request.amount))
        balance = system.ledger.get_balance(owner, entry.coin_type)
    except BankError as e:
        raise _http_error(e)
    return {
        "history_id": entry.history_id,
        "coin_type": entry.coin_type.value,
        "amount": str(entry.change_amount),
        "balance": str(balance),
        "message": "Deposit processed successfully"
    }


@app.post("/bank/{owner}/withdraw")
def withdraw(owner: str, request: AmountRequest, system: BankSystem = Depends(get_bank_system)):
    """Move currency from the bank into the wallet"""
    try:
        entry = system.ledger.withdraw(owner, request.coin_type, parse_amount(request.amount))
        balance = system.ledger.get_balance(owner, entry.coin_type)
    except BankError as e:
        raise _http_error(e)
    return {
        "history_id": entry.history_id,
        "coin_type": entry.coin_type.value,
        "amount": str(entry.change_amount),
        "balance": str(balance),
        "message": "Withdrawal processed successfully"
    }


@app.get("/bank/{owner}/history")
def get_history(owner: str, coin_type: Optional[str] = None, system: BankSystem = Depends(get_bank_system)):
    """Get bank history, oldest first"""
    try:
        entries = system.ledger.get_history(owner, coin_type)
    except BankError as e:
        raise _http_error(e)
    return {"owner": owner, "history": [_history_to_dict(entry) for entry in entries]}


@app.post("/bank/{owner}/command")
def run_command(owner: str, request: CommandRequest, system: BankSystem = Depends(get_bank_system)):
    """Run /bank with raw arguments"""
    result = system.bank_command.execute(owner, request.args)
    return {"success": result.success, "message": result.message}


@app.get("/")
async def root():
    """API information"""
    return {
        "system": "Currency Bank",
        "version": "1.0.0",
        "endpoints": {
            "docs": "/docs",
            "health": "/health",
            "bank": "/bank/{owner}"
        }
    }


# Run server function
def run_server(host: str = "0.0.0.0", port: int = 8090, system: Optional[BankSystem] = None):
    """Start the interest scheduler and run the FastAPI server"""
    global bank_system
    bank_system = system or get_bank_system()
    bank_system.start()
    try:
        uvicorn.run(app, host=host, port=port, log_level="info")
    finally:
        bank_system.close()
