# MIT License
# Copyright (c) 2025 Hashborn

import argparse
import os
import sqlite3
import sys
import logging
from typing import Optional
from ..blockchain.core.merkle import MerkleConfig
from ..blockchain.core.state import AccountStore
from ..blockchain.storage.db import StorageDB
from ..blockchain.snapshot import StateExporter, StateSnapshot, verify_snapshot
from ..blockchain.observability.metrics import write_metrics
from ..protocol.config.params import DEFAULT_NUM_ROUTINES, get_network
from ..protocol.types.common import AddressFormat, OutputError, ProtocolError, StoreIterationError

logger = logging.getLogger(__name__)

DEFAULT_HOME = os.environ.get("NODEDUMP_HOME", os.path.expanduser("~/.bnbchaind"))

def db_path(home: str) -> str:
    return os.path.join(home, "data", "chain.db")

def open_store_db(home: str) -> StorageDB:
    path = db_path(home)
    try:
        return StorageDB(path, read_only=True)
    except sqlite3.Error as e:
        raise StoreIterationError(f"Cannot open {path}: {e}") from e

def is_empty_state(home: str) -> bool:
    """True when the home holds no account state yet (only genesis)."""
    data_dir = os.path.join(home, "data")
    if not os.path.isdir(data_dir):
        raise StoreIterationError(f"Data directory {data_dir} not found")
    if not os.path.exists(db_path(home)):
        return True
    db = open_store_db(home)
    try:
        return AccountStore(db).is_empty()
    finally:
        db.close()

def open_trace_writer(trace_file: Optional[str]):
    if not trace_file:
        return None
    try:
        return open(trace_file, "a")
    except OSError as e:
        raise OutputError(f"Cannot open trace file {trace_file}: {e}") from e

def cmd_export(args) -> int:
    """Export account state and proofs to a JSON file."""
    if not args.path:
        print("Error: <path/state.json> should be set")
        return 1

    if args.num_routines < 1:
        print("Error: --num-routines must be at least 1")
        return 1

    try:
        network = get_network(args.network)
    except ValueError as e:
        print(f"Error: {e}")
        return 1
    if args.address_format:
        network = network.with_address_format(AddressFormat(args.address_format))

    try:
        empty = is_empty_state(args.home)
    except ProtocolError as e:
        print(f"Error: {e.stage}: {e}")
        return 1

    if empty:
        logger.warning("State is not initialized. Returning genesis file.")
        genesis_file = os.path.join(args.home, "config", "genesis.json")
        if not os.path.exists(genesis_file):
            print(f"Error: genesis file {genesis_file} not found")
            return 1
        with open(genesis_file, "r") as f:
            print(f.read())
        return 0

    merkle_config = MerkleConfig(
        num_routines=args.num_routines,
        run_in_parallel=args.num_routines > 1,
        sort_sibling_pairs=not args.no_sort_pairs,
    )
    exporter = StateExporter(network=network, merkle_config=merkle_config)

    db = None
    trace_writer = None
    try:
        db = open_store_db(args.home)
        trace_writer = open_trace_writer(args.trace_store)
        store = AccountStore(db, trace_writer=trace_writer)
        snapshot = exporter.export(store.export_context(network))
        exporter.write(snapshot, args.path)
    except ProtocolError as e:
        print(f"Error: {e.stage}: {e}")
        return 1
    finally:
        if trace_writer:
            trace_writer.close()
        if db is not None:
            db.close()
        if args.metrics_file:
            try:
                write_metrics(args.metrics_file)
            except OSError as e:
                logger.error(f"Cannot write metrics to {args.metrics_file}: {e}")

    print(f"Exported {len(snapshot.accounts)} accounts at height {snapshot.block_height}")
    print(f"State root: {snapshot.state_root}")
    return 0

def cmd_verify(args) -> int:
    """Check every proof and the asset totals of an exported file."""
    try:
        snapshot = StateSnapshot.load(args.path)
    except (OSError, ValueError) as e:
        print(f"Error: cannot read {args.path}: {e}")
        return 1

    merkle_config = MerkleConfig(sort_sibling_pairs=not args.no_sort_pairs)
    if verify_snapshot(snapshot, merkle_config):
        print(f"OK: {len(snapshot.accounts)} accounts match root {snapshot.state_root}")
        return 0
    print("INVALID")
    return 1

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="nodedump", description="BNB Beacon Chain state dump tool")
    parser.add_argument("--home", default=DEFAULT_HOME, help="Node home directory")
    parser.add_argument("--network", default=os.environ.get("NODEDUMP_NETWORK", "devnet"), help="Network preset")
    parser.add_argument("--log-level", default="INFO", help="Logging level")

    subparsers = parser.add_subparsers(dest="command", required=True)

    # Export command
    export_parser = subparsers.add_parser("export", help="Export state to JSON")
    export_parser.add_argument("path", nargs="?", default="", help="<path/state.json>")
    export_parser.add_argument("--trace-store", default="", help="Append store reads to this file")
    export_parser.add_argument("--num-routines", type=int, default=DEFAULT_NUM_ROUTINES, help="Merkle hashing workers")
    export_parser.add_argument("--no-sort-pairs", action="store_true", help="Keep sibling pairs in tree order")
    export_parser.add_argument("--address-format", choices=[f.value for f in AddressFormat], help="Address text format")
    export_parser.add_argument("--metrics-file", default="", help="Write Prometheus metrics to this file")

    # Verify command
    verify_parser = subparsers.add_parser("verify", help="Verify an exported state file")
    verify_parser.add_argument("path", help="<path/state.json>")
    verify_parser.add_argument("--no-sort-pairs", action="store_true", help="File was exported with --no-sort-pairs")

    return parser

def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format='%(asctime)s %(levelname)s: %(message)s',
        datefmt='%H:%M:%S'
    )

    if args.command == "export":
        code = cmd_export(args)
    elif args.command == "verify":
        code = cmd_verify(args)
    else:
        code = 1
    sys.exit(code)

if __name__ == "__main__":
    main()
