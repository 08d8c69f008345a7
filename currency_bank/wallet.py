"""
Wallet Service Module

Boundary to the external wallet that holds a player's spendable currency.
The bank only calls into it (get, add, minus) and never stores its state.
Calls are synchronous and are not retried.
"""

from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Dict, Optional
import threading

import httpx

from .currency import CoinType, to_decimal
from .errors import ExternalServiceError, InsufficientFundsError, ValidationError
from .logging_config import get_logger

logger = get_logger("currency_bank.wallet")


class WalletService(ABC):
    """Abstract interface for the player wallet"""

    @abstractmethod
    def get_coin(self, owner: str, coin_type: CoinType) -> Decimal:
        """Spendable balance of a coin type"""
        pass

    @abstractmethod
    def add_coin(self, owner: str, coin_type: CoinType, amount: Decimal) -> None:
        """Credit the wallet"""
        pass

    @abstractmethod
    def minus_coin(self, owner: str, coin_type: CoinType, amount: Decimal) -> None:
        """Debit the wallet"""
        pass


class InMemoryWallet(WalletService):
    """In-process wallet for development and testing"""

    def __init__(self, balances: Optional[Dict[tuple, Decimal]] = None):
        self._balances: Dict[tuple, Decimal] = {}
        self._lock = threading.Lock()
        for (owner, coin_type), amount in (balances or {}).items():
            self._balances[(owner, CoinType.parse(coin_type))] = Decimal(amount)

    def get_coin(self, owner: str, coin_type: CoinType) -> Decimal:
        with self._lock:
            return self._balances.get((owner, coin_type), Decimal('0'))

    def add_coin(self, owner: str, coin_type: CoinType, amount: Decimal) -> None:
        with self._lock:
            key = (owner, coin_type)
            self._balances[key] = self._balances.get(key, Decimal('0')) + amount

    def minus_coin(self, owner: str, coin_type: CoinType, amount: Decimal) -> None:
        with self._lock:
            key = (owner, coin_type)
            current = self._balances.get(key, Decimal('0'))
            if current < amount:
                raise InsufficientFundsError(
                    f"You do not have enough {coin_type.value} in your wallet."
                )
            self._balances[key] = current - amount


class HttpWalletClient(WalletService):
    """REST client for a remote wallet service"""

    def __init__(
        self,
        base_url: str,
        timeout: float = 5.0,
        api_key: Optional[str] = None,
        transport: Optional[httpx.BaseTransport] = None
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.api_key = api_key

        headers = {}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        self._client = httpx.Client(
            base_url=self.base_url, timeout=timeout, headers=headers, transport=transport
        )

    def _request(self, method: str, path: str, json: Optional[dict] = None) -> httpx.Response:
        try:
            return self._client.request(method, path, json=json)
        except httpx.HTTPError as e:
            logger.error(f"Wallet service connection failed: {e}")
            raise ExternalServiceError(f"Wallet service unavailable: {e}") from e

    def _check(self, response: httpx.Response, action: str) -> None:
        if response.is_success:
            return
        logger.warning(f"Wallet {action} returned {response.status_code}: {response.text}")
        raise ExternalServiceError(
            f"Wallet {action} failed with status {response.status_code}"
        )

    def get_coin(self, owner: str, coin_type: CoinType) -> Decimal:
        response = self._request("GET", f"/wallets/{owner}/{coin_type.value}")
        self._check(response, "balance query")
        try:
            return to_decimal(response.json()["balance"])
        except (ValueError, KeyError, TypeError, ValidationError) as e:
            raise ExternalServiceError(f"Malformed wallet balance response: {e}") from e

    def add_coin(self, owner: str, coin_type: CoinType, amount: Decimal) -> None:
        response = self._request(
            "POST", f"/wallets/{owner}/{coin_type.value}/add", json={"amount": str(amount)}
        )
        self._check(response, "credit")

    def minus_coin(self, owner: str, coin_type: CoinType, amount: Decimal) -> None:
        response = self._request(
            "POST", f"/wallets/{owner}/{coin_type.value}/minus", json={"amount": str(amount)}
        )
        if response.status_code == 409:
            raise InsufficientFundsError(
                f"You do not have enough {coin_type.value} in your wallet."
            )
        self._check(response, "debit")

    def close(self):
        """Close the HTTP client"""
        self._client.close()
