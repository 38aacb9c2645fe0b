import json
import logging
import sqlite3
from typing import IO, Iterator, Optional

from pydantic import ValidationError

from .accounts import Account
from ..snapshot.types import ExportContext
from ..storage.db import StorageDB
from ...protocol.config.params import NetworkConfig, CURRENT_NETWORK
from ...protocol.types.common import StoreIterationError

logger = logging.getLogger(__name__)

ACCOUNT_PREFIX = "acc:"
CHAIN_ID_KEY = "chain_id"


class AccountStore:
    """
    Read access to the accounts of a ledger state database.

    Accounts live in the `state` table under `acc:<address hex>` as JSON and
    are yielded in key order, which is stable for a fixed snapshot.
    """

    def __init__(self, db: StorageDB, trace_writer: Optional[IO[str]] = None):
        self.db = db
        self.trace_writer = trace_writer

    def iterate_accounts(self) -> Iterator[Account]:
        """
        Lazily yields every account. Not restartable: call again for a new pass.

        Raises:
            StoreIterationError: the database failed or a row is malformed
        """
        height = self.last_block_height()
        try:
            for key, raw_json in self.db.iter_state_by_prefix(ACCOUNT_PREFIX):
                try:
                    acc = Account.model_validate_json(raw_json)
                except ValidationError as e:
                    raise StoreIterationError(f"Malformed account record {key}: {e}") from e
                if key[len(ACCOUNT_PREFIX):] != acc.address.hex():
                    raise StoreIterationError(f"Account record {key} holds address {acc.address.hex()}")
                self._trace("read", key, height)
                yield acc
        except sqlite3.Error as e:
            raise StoreIterationError(f"Account iteration failed: {e}") from e

    def _trace(self, operation: str, key: str, height: int):
        if self.trace_writer is None:
            return
        self.trace_writer.write(json.dumps({"operation": operation, "key": key, "height": height}) + "\n")

    def set_account(self, account: Account):
        self.db.set_state(f"{ACCOUNT_PREFIX}{account.address.hex()}", account.model_dump_json())

    def set_chain_id(self, chain_id: str):
        self.db.set_state(CHAIN_ID_KEY, chain_id)

    def save_commit(self, height: int, commit_hash: str):
        self.db.save_commit(height, commit_hash)

    def chain_id(self, default: Optional[str] = None) -> Optional[str]:
        try:
            return self.db.get_state(CHAIN_ID_KEY) or default
        except sqlite3.Error as e:
            raise StoreIterationError(f"Failed to read chain id: {e}") from e

    def last_block_height(self) -> int:
        """Height of the last commit, -1 for an empty chain."""
        try:
            last = self.db.get_last_commit()
        except sqlite3.Error as e:
            raise StoreIterationError(f"Failed to read last commit: {e}") from e
        return last[0] if last else -1

    def last_commit_id(self) -> str:
        try:
            last = self.db.get_last_commit()
        except sqlite3.Error as e:
            raise StoreIterationError(f"Failed to read last commit: {e}") from e
        return last[1] if last else ""

    def is_empty(self) -> bool:
        try:
            return self.db.count_state_by_prefix(ACCOUNT_PREFIX) == 0
        except sqlite3.Error as e:
            raise StoreIterationError(f"Failed to count accounts: {e}") from e

    def export_context(self, network: Optional[NetworkConfig] = None) -> ExportContext:
        """Metadata and iteration capability for one export, read from this store."""
        network = network or CURRENT_NETWORK
        ctx = ExportContext(
            iterate_accounts=self.iterate_accounts,
            chain_id=self.chain_id(default=network.chain_id),
            block_height=self.last_block_height(),
            commit_id=self.last_commit_id(),
        )
        logger.info(f"Export context: chain {ctx.chain_id}, height {ctx.block_height}")
        return ctx
