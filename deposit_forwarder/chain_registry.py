"""
Chain Registry

Static description of every monitored ledger: identity, RPC endpoint,
asset contract and block explorer. Loaded once at startup from
monitor_config.yaml (or the built-in testnet defaults) and validated.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterator, List, Optional

import yaml
from loguru import logger
from web3 import Web3

from .errors import ConfigurationFault


@dataclass(frozen=True)
class ChainConfig:
    """One monitored ledger"""
    chain_id: str          # registry key, e.g. "sepolia"
    name: str              # human readable, e.g. "Ethereum Sepolia"
    rpc_url: str
    asset_address: str
    explorer_url: str
    asset_symbol: str = "USDC"
    asset_decimals: int = 6

    def tx_url(self, tx_id: str) -> str:
        """Explorer link for a transaction"""
        return f"{self.explorer_url.rstrip('/')}/tx/{tx_id}"

    def __repr__(self):
        return f"ChainConfig({self.chain_id}: {self.name})"


# Deployment of the unified deposit account on the public testnets
DEFAULT_CHAINS: Dict[str, Dict] = {
    'sepolia': {
        'name': 'Ethereum Sepolia',
        'rpc_url': 'https://sepolia.drpc.org',
        'asset_address': '0x1c7D4B196Cb0C7B01d743Fbc6116a902379C7238',
        'explorer_url': 'https://sepolia.etherscan.io',
    },
    'arbitrumSepolia': {
        'name': 'Arbitrum Sepolia',
        'rpc_url': 'https://arbitrum-sepolia-rpc.publicnode.com',
        'asset_address': '0x75faf114eafb1BDbe2F0316DF893fd58CE46AA4d',
        'explorer_url': 'https://sepolia.arbiscan.io',
    },
    'baseSepolia': {
        'name': 'Base Sepolia',
        'rpc_url': 'https://rpc.therpc.io/base-sepolia',
        'asset_address': '0x036CbD53842c5426634e7929541eC2318f3dCF7e',
        'explorer_url': 'https://sepolia.basescan.org',
    },
}


class ChainRegistry:
    """
    Immutable, ordered collection of ChainConfig records

    Invariant: chain identities are unique.
    """

    def __init__(self, chains: List[ChainConfig]):
        self._chains: Dict[str, ChainConfig] = {}
        for chain in chains:
            if chain.chain_id in self._chains:
                raise ConfigurationFault(f"Duplicate chain identity: {chain.chain_id}")
            self._chains[chain.chain_id] = chain

        if not self._chains:
            raise ConfigurationFault("No chains configured")

    def get(self, chain_id: str) -> ChainConfig:
        try:
            return self._chains[chain_id]
        except KeyError:
            raise KeyError(f"Unknown chain: {chain_id}") from None

    @property
    def chain_ids(self) -> List[str]:
        return list(self._chains)

    def __iter__(self) -> Iterator[ChainConfig]:
        return iter(self._chains.values())

    def __len__(self) -> int:
        return len(self._chains)

    def __contains__(self, chain_id: str) -> bool:
        return chain_id in self._chains


def build_chain_config(chain_id: str, data: Dict) -> ChainConfig:
    """
    Validate one raw `chains:` entry and turn it into a ChainConfig

    Args:
        chain_id: Registry key
        data: Raw mapping from YAML

    Returns:
        Validated ChainConfig with a checksummed asset address

    Raises:
        ConfigurationFault: On any missing or malformed field
    """
    if not isinstance(data, dict):
        raise ConfigurationFault(f"Chain {chain_id}: expected a mapping, got {type(data).__name__}")

    for field_name in ('rpc_url', 'asset_address', 'explorer_url'):
        value = data.get(field_name)
        if not value or not isinstance(value, str):
            raise ConfigurationFault(f"Chain {chain_id}: '{field_name}' is missing or empty")

    try:
        asset_address = Web3.to_checksum_address(data['asset_address'])
    except ValueError as e:
        raise ConfigurationFault(
            f"Chain {chain_id}: invalid asset address {data['asset_address']!r}"
        ) from e

    try:
        decimals = int(data.get('asset_decimals', 6))
    except (TypeError, ValueError) as e:
        raise ConfigurationFault(f"Chain {chain_id}: asset_decimals must be an integer") from e
    if decimals < 0:
        raise ConfigurationFault(f"Chain {chain_id}: asset_decimals must be >= 0")

    return ChainConfig(
        chain_id=chain_id,
        name=str(data.get('name') or chain_id),
        rpc_url=data['rpc_url'],
        asset_address=asset_address,
        explorer_url=data['explorer_url'],
        asset_symbol=str(data.get('asset_symbol', 'USDC')),
        asset_decimals=decimals,
    )


def load_registry(config_path: Optional[str] = None, config: Optional[Dict] = None) -> ChainRegistry:
    """
    Load the chain registry

    Args:
        config_path: Path to monitor_config.yaml (ignored when `config` is given)
        config: Already parsed configuration dict

    Returns:
        ChainRegistry built from the `chains:` section, or from DEFAULT_CHAINS
        when the file or section is absent
    """
    if config is None:
        config = read_config_file(config_path)

    raw_chains = config.get('chains')
    if raw_chains is None:
        logger.info("No chains section in config, using default testnet deployment")
        raw_chains = DEFAULT_CHAINS
    elif not isinstance(raw_chains, dict):
        raise ConfigurationFault("'chains' must be a mapping of chain identity to settings")

    registry = ChainRegistry([
        build_chain_config(str(chain_id), data) for chain_id, data in raw_chains.items()
    ])
    logger.info(f"Loaded {len(registry)} chains: {', '.join(registry.chain_ids)}")
    return registry


def read_config_file(config_path: Optional[str]) -> Dict:
    """
    Read monitor_config.yaml

    A missing file yields an empty dict so defaults apply; an unreadable or
    malformed file is a ConfigurationFault.
    """
    if not config_path:
        return {}

    config_file = Path(config_path)
    if not config_file.exists():
        logger.warning(f"Config file {config_file} not found, using defaults")
        return {}

    try:
        with open(config_file, 'r', encoding='utf-8') as f:
            config = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationFault(f"Cannot read config file {config_file}: {e}") from e

    if config is None:
        return {}
    if not isinstance(config, dict):
        raise ConfigurationFault(f"Config file {config_file} must contain a mapping")
    return config
