"""
Tests for wallet service implementations
"""

import json
import pytest
from decimal import Decimal
from unittest.mock import patch

import httpx

from currency_bank.currency import CoinType
from currency_bank.errors import ExternalServiceError, InsufficientFundsError
from currency_bank.wallet import HttpWalletClient, InMemoryWallet


class TestInMemoryWallet:
    """Test the in-process wallet"""

    def setup_method(self):
        self.wallet = InMemoryWallet({("alice", "coin"): Decimal('100')})

    def test_initial_balances(self):
        """Test seeded and absent balances"""
        assert self.wallet.get_coin("alice", CoinType.COIN) == Decimal('100')
        assert self.wallet.get_coin("alice", CoinType.GOLD) == Decimal('0')
        assert self.wallet.get_coin("bob", CoinType.COIN) == Decimal('0')

    def test_add_and_minus(self):
        """Test credit and debit"""
        self.wallet.add_coin("alice", CoinType.COIN, Decimal('25'))
        self.wallet.minus_coin("alice", CoinType.COIN, Decimal('50'))
        assert self.wallet.get_coin("alice", CoinType.COIN) == Decimal('75')

    def test_minus_insufficient(self):
        """Test debit beyond balance is rejected and leaves the balance"""
        with pytest.raises(InsufficientFundsError, match="You do not have enough coin in your wallet."):
            self.wallet.minus_coin("alice", CoinType.COIN, Decimal('100.01'))
        assert self.wallet.get_coin("alice", CoinType.COIN) == Decimal('100')


class TestHttpWalletClient:
    """Test the REST wallet client against a mock transport"""

    def setup_method(self):
        self.requests = []
        self.balances = {("alice", "gold"): Decimal('10')}

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        parts = request.url.path.strip("/").split("/")
        owner, coin = parts[1], parts[2]
        key = (owner, coin)

        if request.method == "GET":
            return httpx.Response(200, json={"balance": str(self.balances.get(key, Decimal('0')))})

        amount = Decimal(json.loads(request.content)["amount"])
        if parts[3] == "add":
            self.balances[key] = self.balances.get(key, Decimal('0')) + amount
            return httpx.Response(200, json={"balance": str(self.balances[key])})

        current = self.balances.get(key, Decimal('0'))
        if current < amount:
            return httpx.Response(409, json={"detail": "insufficient funds"})
        self.balances[key] = current - amount
        return httpx.Response(200, json={"balance": str(self.balances[key])})

    def make_client(self, handler=None, api_key=None):
        transport = httpx.MockTransport(handler or self.handler)
        return HttpWalletClient("http://wallet.test", api_key=api_key, transport=transport)

    def test_get_coin(self):
        """Test balance query"""
        client = self.make_client()
        assert client.get_coin("alice", CoinType.GOLD) == Decimal('10')
        assert self.requests[0].url.path == "/wallets/alice/gold"
        client.close()

    def test_add_and_minus(self):
        """Test credit and debit requests"""
        client = self.make_client()
        client.add_coin("alice", CoinType.GOLD, Decimal('5'))
        client.minus_coin("alice", CoinType.GOLD, Decimal('12.5'))

        assert self.balances[("alice", "gold")] == Decimal('2.5')
        assert self.requests[0].url.path == "/wallets/alice/gold/add"
        assert json.loads(self.requests[1].content) == {"amount": "12.5"}
        client.close()

    def test_minus_conflict_is_insufficient_funds(self):
        """Test HTTP 409 on debit"""
        client = self.make_client()
        with pytest.raises(InsufficientFundsError):
            client.minus_coin("alice", CoinType.GOLD, Decimal('11'))
        client.close()

    def test_server_error(self):
        """Test non-2xx responses raise ExternalServiceError"""
        client = self.make_client(lambda request: httpx.Response(500, text="boom"))
        with pytest.raises(ExternalServiceError):
            client.add_coin("alice", CoinType.COIN, Decimal('1'))
        with pytest.raises(ExternalServiceError):
            client.minus_coin("alice", CoinType.COIN, Decimal('1'))
        client.close()

    def test_connection_error(self):
        """Test transport failures raise ExternalServiceError"""
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = self.make_client(refuse)
        with pytest.raises(ExternalServiceError):
            client.get_coin("alice", CoinType.COIN)
        client.close()

    def test_malformed_balance(self):
        """Test a balance response without a number"""
        client = self.make_client(lambda request: httpx.Response(200, json={"coins": 1}))
        with pytest.raises(ExternalServiceError):
            client.get_coin("alice", CoinType.COIN)
        client.close()

    def test_api_key_header(self):
        """Test bearer authentication"""
        client = self.make_client(api_key="secret")
        client.get_coin("alice", CoinType.GOLD)
        assert self.requests[0].headers["Authorization"] == "Bearer secret"
        client.close()

    @patch('httpx.Client.request')
    def test_timeout(self, mock_request):
        """Test a timed out request is not retried"""
        mock_request.side_effect = httpx.ReadTimeout("Read timed out")

        client = self.make_client()
        with pytest.raises(ExternalServiceError, match="Wallet service unavailable"):
            client.add_coin("alice", CoinType.GOLD, Decimal('1'))
        assert mock_request.call_count == 1
        client.close()
