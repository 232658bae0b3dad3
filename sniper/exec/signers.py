"""Transaction signers for the trading wallet."""

import json
from pathlib import Path
from typing import Protocol

import structlog
from eth_account import Account
from eth_account.signers.local import LocalAccount

logger = structlog.get_logger(__name__)


class TxnSigner(Protocol):
    """Protocol for transaction signers."""

    @property
    def address(self) -> str:
        """Lowercase address of the signing account."""
        ...

    def sign_transaction(self, tx: dict) -> bytes:
        """Sign an EIP-1559 transaction dict and return raw signed bytes.

        Args:
            tx: Transaction fields as accepted by eth_account

        Returns:
            Signed transaction bytes ready for eth_sendRawTransaction
        """
        ...


class WalletSigner(TxnSigner):
    """Signer backed by a local eth_account key."""

    def __init__(
        self,
        private_key: str | None = None,
        keystore_path: str | None = None,
        keystore_password: str | None = None,
    ) -> None:
        """Initialize WalletSigner from a raw key or an encrypted keystore.

        Args:
            private_key: Hex private key
            keystore_path: Path to a V3 keystore JSON file
            keystore_password: Password for the keystore

        Raises:
            ValueError: If no usable key source is given
        """
        self.account = self._load_account(private_key, keystore_path, keystore_password)
        logger.info("WalletSigner initialized", address=self.address)

    @property
    def address(self) -> str:
        return self.account.address.lower()

    def sign_transaction(self, tx: dict) -> bytes:
        signed = self.account.sign_transaction(tx)
        return bytes(signed.raw_transaction)

    def _load_account(
        self,
        private_key: str | None,
        keystore_path: str | None,
        keystore_password: str | None,
    ) -> LocalAccount:
        """Load the account, preferring the keystore over a raw key."""
        if keystore_path:
            if keystore_password is None:
                raise ValueError("keystore_password is required with keystore_path")
            return Account.from_key(load_keystore(keystore_path, keystore_password))

        if private_key:
            try:
                return Account.from_key(private_key)
            except (ValueError, TypeError) as e:
                raise ValueError(f"Invalid private key: {e}") from e

        raise ValueError(
            "No valid key source found. Provide private_key or keystore_path"
        )


def load_keystore(path: str, password: str) -> bytes:
    """Decrypt a V3 keystore file.

    Args:
        path: Keystore JSON path
        password: Keystore password

    Returns:
        32-byte private key

    Raises:
        ValueError: If the file is unreadable or the password is wrong
    """
    try:
        keystore = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise ValueError(f"Failed to read keystore {path}: {e}") from e

    try:
        return bytes(Account.decrypt(keystore, password))
    except ValueError as e:
        raise ValueError(f"Failed to decrypt keystore {path}: {e}") from e
