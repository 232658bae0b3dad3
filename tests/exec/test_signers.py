"""Tests for transaction signers and the live wallet."""

import json

import pytest
from eth_account import Account

from sniper.core.types import TxReceipt, TxRequest
from sniper.exec.signers import WalletSigner, load_keystore
from sniper.exec.wallet import LiveWallet

PRIVATE_KEY = "0x" + "4c" * 32
ROUTER = "0x" + "0a" * 20


def make_tx(**overrides) -> TxRequest:
    fields = {
        "to": ROUTER,
        "data": "0x1234",
        "value": 10**16,
        "gas": 300_000,
        "max_fee_per_gas": 50 * 10**9,
        "max_priority_fee_per_gas": 2 * 10**9,
        "nonce": 3,
        "chain_id": 1,
    }
    fields.update(overrides)
    return TxRequest(**fields)


@pytest.fixture
def keystore_file(tmp_path):
    keystore = Account.encrypt(PRIVATE_KEY, "secret", kdf="pbkdf2", iterations=1000)
    path = tmp_path / "keystore.json"
    path.write_text(json.dumps(keystore), encoding="utf-8")
    return path


class TestWalletSigner:
    """Test key loading and signing."""

    def test_private_key(self):
        signer = WalletSigner(private_key=PRIVATE_KEY)

        assert signer.address == Account.from_key(PRIVATE_KEY).address.lower()

    def test_signs_eip1559(self):
        """Signed transactions are typed (0x02) envelopes that recover to the signer."""
        signer = WalletSigner(private_key=PRIVATE_KEY)

        raw = signer.sign_transaction(make_tx().to_signable())

        assert raw[0] == 2
        assert Account.recover_transaction(raw).lower() == signer.address

    def test_keystore(self, keystore_file):
        signer = WalletSigner(keystore_path=str(keystore_file), keystore_password="secret")

        assert signer.address == Account.from_key(PRIVATE_KEY).address.lower()

    def test_keystore_wrong_password(self, keystore_file):
        with pytest.raises(ValueError, match="Failed to decrypt"):
            load_keystore(str(keystore_file), "wrong")

    def test_keystore_missing_file(self, tmp_path):
        with pytest.raises(ValueError, match="Failed to read keystore"):
            load_keystore(str(tmp_path / "missing.json"), "secret")

    def test_keystore_requires_password(self, keystore_file):
        with pytest.raises(ValueError, match="keystore_password"):
            WalletSigner(keystore_path=str(keystore_file))

    def test_invalid_private_key(self):
        with pytest.raises(ValueError, match="Invalid private key"):
            WalletSigner(private_key="0x1234")

    def test_no_key_source(self):
        with pytest.raises(ValueError, match="No valid key source"):
            WalletSigner()


class MockGateway:
    """Gateway recording raw transactions."""

    def __init__(self):
        self.sent: list[bytes] = []

    async def send_transaction(self, signed_tx: bytes) -> str:
        self.sent.append(signed_tx)
        return "0x" + "aa" * 32

    async def wait_for_receipt(self, tx_hash: str) -> TxReceipt:
        return TxReceipt(transaction_hash=tx_hash, status=1, gas_used=21_000)

    async def get_balance(self, address: str, token: str | None = None) -> int:
        return 7 if token else 10**18


class TestLiveWallet:
    """Test the signing wallet."""

    @pytest.mark.asyncio
    async def test_submit_signs_for_wallet_chain(self):
        gateway = MockGateway()
        wallet = LiveWallet(gateway, WalletSigner(private_key=PRIVATE_KEY), chain_id=8453)

        receipt = await wallet.submit(make_tx(chain_id=1))

        assert receipt.succeeded
        assert len(gateway.sent) == 1
        assert Account.recover_transaction(gateway.sent[0]).lower() == wallet.address

    @pytest.mark.asyncio
    async def test_balances(self):
        wallet = LiveWallet(MockGateway(), WalletSigner(private_key=PRIVATE_KEY), chain_id=1)

        assert await wallet.get_eth_balance() == 10**18
        assert await wallet.get_token_balance("0x" + "ab" * 20) == 7

    def test_sign_requires_nonce(self):
        wallet = LiveWallet(MockGateway(), WalletSigner(private_key=PRIVATE_KEY), chain_id=1)

        with pytest.raises(ValueError, match="nonce"):
            wallet.sign(make_tx(nonce=None))
