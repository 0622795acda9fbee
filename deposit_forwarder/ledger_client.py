"""
Ledger Client

Capability boundary between the monitoring engine and the chains. The engine
only talks to `LedgerClient`; `Web3LedgerClient` is the production
implementation on top of web3.py's AsyncWeb3.
"""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, List

from eth_account import Account
from loguru import logger
from web3 import AsyncWeb3, Web3
from web3.exceptions import ContractLogicError

from .chain_registry import ChainConfig, ChainRegistry
from .errors import ForwardReverted


@dataclass(frozen=True)
class RawTransferLog:
    """Decoded ERC-20 Transfer log"""
    sender: str
    recipient: str
    amount: int
    tx_id: str
    block_height: int
    log_index: int = 0


@dataclass(frozen=True)
class TransactionReceipt:
    """Outcome of a mined transaction"""
    tx_id: str
    success: bool
    block_height: int
    resource_cost: int  # gas used


class LedgerClient(ABC):
    """Async capabilities the engine needs from every chain"""

    @abstractmethod
    async def current_height(self, chain_id: str) -> int:
        ...

    @abstractmethod
    async def query_transfer_logs(
        self,
        chain_id: str,
        asset_address: str,
        destination_address: str,
        from_height: int,
        to_height: int
    ) -> List[RawTransferLog]:
        """Transfer logs of `asset_address` to `destination_address` in [from_height, to_height]"""

    @abstractmethod
    async def submit_forward_transaction(self, chain_id: str, account_address: str) -> str:
        """
        Ask the account contract to sweep its balance

        Raises:
            ForwardReverted: Contract logic rejected the call before submission
        """

    @abstractmethod
    async def await_receipt(self, chain_id: str, tx_id: str) -> TransactionReceipt:
        ...

    @abstractmethod
    async def read_balance(self, chain_id: str, account_address: str, asset_address: str) -> int:
        ...

    async def close(self):
        """Release connections"""


ERC20_ABI = [
    {
        'anonymous': False,
        'inputs': [
            {'indexed': True, 'name': 'from', 'type': 'address'},
            {'indexed': True, 'name': 'to', 'type': 'address'},
            {'indexed': False, 'name': 'value', 'type': 'uint256'},
        ],
        'name': 'Transfer',
        'type': 'event',
    },
    {
        'inputs': [{'name': 'account', 'type': 'address'}],
        'name': 'balanceOf',
        'outputs': [{'name': '', 'type': 'uint256'}],
        'stateMutability': 'view',
        'type': 'function',
    },
]

# Logic delegated to the unified account
ACCOUNT_ABI = [
    {'inputs': [], 'name': 'forwardToken', 'outputs': [], 'stateMutability': 'nonpayable', 'type': 'function'},
    {'inputs': [], 'name': 'UnauthorizedRelayer', 'type': 'error'},
    {'inputs': [], 'name': 'InvalidAmount', 'type': 'error'},
]

# 4-byte selectors of the account contract's custom errors
CUSTOM_ERRORS: Dict[str, str] = {
    Web3.to_hex(Web3.keccak(text=f"{name}()")[:4]): name
    for name in ('UnauthorizedRelayer', 'InvalidAmount')
}


def describe_revert(error: ContractLogicError) -> str:
    """Revert message with the custom error name spelled out when recognised"""
    message = str(error.message or error)
    data = error.data if isinstance(error.data, str) else None
    if data:
        name = CUSTOM_ERRORS.get(data[:10].lower())
        if name and name not in message:
            message = f"{name}: {message}"
    return message


class Web3LedgerClient(LedgerClient):
    """
    LedgerClient backed by one AsyncWeb3 HTTP connection per chain

    Forward transactions are signed locally with the relayer key and sent raw.
    """

    def __init__(self, registry: ChainRegistry, relayer_key: str, receipt_timeout: float = 120.0):
        """
        Args:
            registry: Chains to connect to
            relayer_key: Private key that pays for and signs forward calls
            receipt_timeout: Seconds to wait for a forward to be mined
        """
        self.registry = registry
        self.receipt_timeout = receipt_timeout
        self._relayer = Account.from_key(relayer_key)
        self._connections: Dict[str, AsyncWeb3] = {}
        self._nonce_locks: Dict[str, asyncio.Lock] = {}

        logger.info(f"Web3 ledger client ready (relayer: {self._relayer.address})")

    def _web3(self, chain_id: str) -> AsyncWeb3:
        w3 = self._connections.get(chain_id)
        if w3 is None:
            chain: ChainConfig = self.registry.get(chain_id)
            w3 = AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(chain.rpc_url))
            self._connections[chain_id] = w3
            logger.debug(f"Connected {chain_id} -> {chain.rpc_url}")
        return w3

    async def current_height(self, chain_id: str) -> int:
        return await self._web3(chain_id).eth.get_block_number()

    async def query_transfer_logs(
        self,
        chain_id: str,
        asset_address: str,
        destination_address: str,
        from_height: int,
        to_height: int
    ) -> List[RawTransferLog]:
        w3 = self._web3(chain_id)
        token = w3.eth.contract(address=Web3.to_checksum_address(asset_address), abi=ERC20_ABI)
        logs = await token.events.Transfer.get_logs(
            argument_filters={'to': Web3.to_checksum_address(destination_address)},
            from_block=from_height,
            to_block=to_height,
        )
        return [
            RawTransferLog(
                sender=log['args']['from'],
                recipient=log['args']['to'],
                amount=int(log['args']['value']),
                tx_id=Web3.to_hex(log['transactionHash']),
                block_height=int(log['blockNumber']),
                log_index=int(log['logIndex']),
            )
            for log in logs
        ]

    async def submit_forward_transaction(self, chain_id: str, account_address: str) -> str:
        w3 = self._web3(chain_id)
        account = w3.eth.contract(address=Web3.to_checksum_address(account_address), abi=ACCOUNT_ABI)

        # One pending nonce per relayer and chain
        lock = self._nonce_locks.setdefault(chain_id, asyncio.Lock())
        async with lock:
            nonce = await w3.eth.get_transaction_count(self._relayer.address, 'pending')
            try:
                tx = await account.functions.forwardToken().build_transaction({
                    'from': self._relayer.address,
                    'nonce': nonce,
                })
            except ContractLogicError as e:
                raise ForwardReverted(describe_revert(e)) from e

            signed = self._relayer.sign_transaction(tx)
            tx_hash = await w3.eth.send_raw_transaction(signed.raw_transaction)

        return Web3.to_hex(tx_hash)

    async def await_receipt(self, chain_id: str, tx_id: str) -> TransactionReceipt:
        receipt = await self._web3(chain_id).eth.wait_for_transaction_receipt(
            tx_id, timeout=self.receipt_timeout
        )
        return TransactionReceipt(
            tx_id=tx_id,
            success=receipt['status'] == 1,
            block_height=int(receipt['blockNumber']),
            resource_cost=int(receipt['gasUsed']),
        )

    async def read_balance(self, chain_id: str, account_address: str, asset_address: str) -> int:
        w3 = self._web3(chain_id)
        token = w3.eth.contract(address=Web3.to_checksum_address(asset_address), abi=ERC20_ABI)
        return int(await token.functions.balanceOf(Web3.to_checksum_address(account_address)).call())

    async def close(self):
        """Disconnect every provider, ignoring errors from already-closed sessions"""
        for chain_id, w3 in list(self._connections.items()):
            try:
                await w3.provider.disconnect()
                logger.debug(f"✓ Closed {chain_id} connection")
            except Exception as e:
                logger.debug(f"Error closing {chain_id} connection: {e}")
        self._connections.clear()


def build_ledger_client(registry: ChainRegistry, relayer_key: str, receipt_timeout: float) -> LedgerClient:
    """Production client factory, kept separate so the CLI can be tested with fakes"""
    return Web3LedgerClient(registry, relayer_key, receipt_timeout=receipt_timeout)
