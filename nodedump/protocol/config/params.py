# MIT License
# Copyright (c) 2025 Hashborn

import os
from typing import Dict
from ..types.common import AddressFormat

# Global Constants
ADDRESS_LENGTH = 20
HASH_SIZE = 32
LEAF_ENCODING_VERSION = 1

# Merkle tree defaults
DEFAULT_NUM_ROUTINES = 4
RUN_IN_PARALLEL = True
SORT_SIBLING_PAIRS = True

class NetworkConfig:
    def __init__(self,
                 network_id: str,
                 chain_id: str,
                 bech32_prefix_acc: str = "bnb",
                 address_format: AddressFormat = AddressFormat.HEX):
        self.network_id = network_id
        self.chain_id = chain_id
        self.bech32_prefix_acc = bech32_prefix_acc
        self.address_format = AddressFormat(address_format)

    def with_address_format(self, address_format: AddressFormat) -> 'NetworkConfig':
        return NetworkConfig(
            network_id=self.network_id,
            chain_id=self.chain_id,
            bech32_prefix_acc=self.bech32_prefix_acc,
            address_format=address_format,
        )

NETWORKS: Dict[str, NetworkConfig] = {
    "devnet": NetworkConfig(
        network_id="devnet",
        chain_id="bnb-devnet-1",
        bech32_prefix_acc="bnb",
    ),
    "testnet": NetworkConfig(
        network_id="testnet",
        chain_id="Binance-Chain-Ganges",
        bech32_prefix_acc="tbnb",
    ),
    "mainnet": NetworkConfig(
        network_id="mainnet",
        chain_id="Binance-Chain-Tigris",
        bech32_prefix_acc="bnb",
    ),
}

def get_network(name: str) -> NetworkConfig:
    try:
        return NETWORKS[name]
    except KeyError:
        raise ValueError(f"Unknown network '{name}' (known: {', '.join(sorted(NETWORKS))})")

# Default to devnet unless overridden by the environment
CURRENT_NETWORK = get_network(os.environ.get("NODEDUMP_NETWORK", "devnet"))
