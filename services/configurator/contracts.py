from __future__ import annotations

import logging
from typing import Any

from eth_account import Account
from eth_account.signers.local import LocalAccount
from web3 import Web3
from web3.exceptions import (
    BadFunctionCallOutput,
    ContractLogicError,
    TimeExhausted,
    Web3RPCError,
    Web3ValidationError
)

from services.common.errors import ConfigurationError, OnChainRejection, TransientRpcError
from services.common.update_codec import sign_digest

LOGGER = logging.getLogger('socketmesh.contracts')

ZERO_ADDRESS = '0x0000000000000000000000000000000000000000'


def _fn(name: str, inputs: list[tuple[str, str]], outputs: list[str] | None = None, view: bool = False) -> dict:
    return {
        'inputs': [{'internalType': kind, 'name': arg, 'type': kind} for arg, kind in inputs],
        'name': name,
        'outputs': [{'internalType': kind, 'name': '', 'type': kind} for kind in (outputs or [])],
        'stateMutability': 'view' if view else 'nonpayable',
        'type': 'function'
    }


SIGNED_LIMIT_INPUTS = [
    ('nonce_', 'uint256'),
    ('dstChainSlug_', 'uint256'),
    ('value_', 'uint256'),
    ('signature_', 'bytes')
]

SOCKET_ABI = [
    _fn(
        'registerSwitchBoard',
        [
            ('switchBoardAddress_', 'address'),
            ('maxPacketLength_', 'uint256'),
            ('siblingChainSlug_', 'uint32'),
            ('capacitorType_', 'uint32')
        ]
    ),
    _fn('capacitors__', [('switchBoard_', 'address'), ('siblingChainSlug_', 'uint32')], ['address'], view=True),
    _fn('decapacitors__', [('switchBoard_', 'address'), ('siblingChainSlug_', 'uint32')], ['address'], view=True)
]

NOTARY_ABI = [
    _fn('isAttester', [('attester_', 'address'), ('remoteChainSlug_', 'uint256')], ['bool'], view=True),
    _fn('grantAttesterRole', [('remoteChainSlug_', 'uint256'), ('attester_', 'address')])
]

TRANSMIT_MANAGER_ABI = [
    _fn('nextNonce', [('signer_', 'address')], ['uint256'], view=True),
    _fn('proposeGasLimit', [('dstChainSlug_', 'uint256')], ['uint256'], view=True),
    _fn('setProposeGasLimit', SIGNED_LIMIT_INPUTS)
]

SWITCHBOARD_ABI = [
    _fn('nextNonce', [('signer_', 'address')], ['uint256'], view=True),
    _fn('executionOverhead', [('dstChainSlug_', 'uint256')], ['uint256'], view=True),
    _fn('setExecutionOverhead', SIGNED_LIMIT_INPUTS)
]

FAST_SWITCHBOARD_ABI = SWITCHBOARD_ABI + [
    _fn('attestGasLimit', [('dstChainSlug_', 'uint256')], ['uint256'], view=True),
    _fn('setAttestGasLimit', SIGNED_LIMIT_INPUTS)
]

NATIVE_SWITCHBOARD_ABI = [
    _fn('remoteNativeSwitchboard', [], ['address'], view=True),
    _fn('updateRemoteNativeSwitchboard', [('remoteNativeSwitchboard_', 'address')])
]

POLYGON_L1_SWITCHBOARD_ABI = [
    _fn('fxChildTunnel', [], ['address'], view=True),
    _fn('setFxChildTunnel', [('fxChildTunnel_', 'address')])
]

POLYGON_L2_SWITCHBOARD_ABI = [
    _fn('fxRootTunnel', [], ['address'], view=True),
    _fn('setFxRootTunnel', [('fxRootTunnel_', 'address')])
]

CONTRACT_ABIS: dict[str, list[dict]] = {
    'Socket': SOCKET_ABI,
    'Notary': NOTARY_ABI,
    'TransmitManager': TRANSMIT_MANAGER_ABI,
    'FastSwitchboard': FAST_SWITCHBOARD_ABI,
    'OptimisticSwitchboard': SWITCHBOARD_ABI,
    'NativeSwitchboard': NATIVE_SWITCHBOARD_ABI,
    'PolygonL1Switchboard': POLYGON_L1_SWITCHBOARD_ABI,
    'PolygonL2Switchboard': POLYGON_L2_SWITCHBOARD_ABI
}


def is_zero_address(value: str | None) -> bool:
    return not value or str(value).lower() == ZERO_ADDRESS


def same_address(left: str | None, right: str | None) -> bool:
    if not left or not right:
        return False
    return str(left).lower() == str(right).lower()


class ChainClient:
    def __init__(
        self,
        chain_slug: int,
        web3: Web3,
        account: LocalAccount,
        tx_timeout_seconds: int = 180
    ) -> None:
        self.chain_slug = chain_slug
        self.web3 = web3
        self.account = account
        self.tx_timeout_seconds = tx_timeout_seconds

    @classmethod
    def from_rpc(cls, chain_slug: int, rpc_url: str, private_key: str, tx_timeout_seconds: int = 180) -> ChainClient:
        if not rpc_url:
            raise ConfigurationError(f'no rpc url configured for chain {chain_slug}', chain_slug=chain_slug)
        if not private_key:
            raise ConfigurationError('SOCKET_SIGNER_KEY is not set', chain_slug=chain_slug)
        try:
            account = Account.from_key(private_key)
        except (TypeError, ValueError):
            raise ConfigurationError('SOCKET_SIGNER_KEY is not a valid private key', chain_slug=chain_slug) from None
        web3 = Web3(Web3.HTTPProvider(rpc_url, request_kwargs={'timeout': 30}))
        return cls(chain_slug, web3, account, tx_timeout_seconds)

    @property
    def signer_address(self) -> str:
        return self.account.address

    def contract(self, name: str, address: str):
        abi = CONTRACT_ABIS.get(name)
        if abi is None:
            raise ConfigurationError(f'no abi registered for contract {name}', chain_slug=self.chain_slug)
        if not Web3.is_address(address):
            raise ConfigurationError(f'invalid {name} address: {address}', chain_slug=self.chain_slug)
        return self.web3.eth.contract(address=Web3.to_checksum_address(address), abi=abi)

    def call(self, name: str, address: str, function: str, *args: Any) -> Any:
        contract = self.contract(name, address)
        label = f'{name}.{function}'
        try:
            return getattr(contract.functions, function)(*args).call()
        except ContractLogicError as exc:
            raise OnChainRejection(f'{label} reverted: {exc}', chain_slug=self.chain_slug) from exc
        except BadFunctionCallOutput as exc:
            # No code at the address, or a contract without this getter.
            raise OnChainRejection(f'{label} returned no data: {exc}', chain_slug=self.chain_slug) from exc
        except Web3ValidationError as exc:
            raise ConfigurationError(f'{label} invalid arguments: {exc}', chain_slug=self.chain_slug) from exc
        except (Web3RPCError, TimeExhausted, OSError) as exc:
            raise TransientRpcError(f'{label} call failed: {exc}', chain_slug=self.chain_slug) from exc

    def transact(self, name: str, address: str, function: str, *args: Any) -> str:
        contract = self.contract(name, address)
        label = f'{name}.{function}'
        try:
            bound = getattr(contract.functions, function)(*args)
            tx = bound.build_transaction(
                {
                    'from': self.account.address,
                    'nonce': self.web3.eth.get_transaction_count(self.account.address, 'pending'),
                    'chainId': self.web3.eth.chain_id
                }
            )
            signed = self.account.sign_transaction(tx)
            tx_hash = self.web3.eth.send_raw_transaction(signed.raw_transaction)
            LOGGER.info('submitted %s chain_slug=%s tx_hash=%s', label, self.chain_slug, Web3.to_hex(tx_hash))
            receipt = self.web3.eth.wait_for_transaction_receipt(tx_hash, timeout=self.tx_timeout_seconds)
        except (ContractLogicError, Web3RPCError) as exc:
            raise OnChainRejection(f'{label} rejected: {exc}', chain_slug=self.chain_slug) from exc
        except Web3ValidationError as exc:
            raise ConfigurationError(f'{label} invalid arguments: {exc}', chain_slug=self.chain_slug) from exc
        except TimeExhausted as exc:
            raise TransientRpcError(f'{label} not confirmed in {self.tx_timeout_seconds}s', chain_slug=self.chain_slug) from exc
        except OSError as exc:
            # requests' connection and timeout errors derive from OSError.
            raise TransientRpcError(f'{label} transport error: {exc}', chain_slug=self.chain_slug) from exc

        tx_hex = Web3.to_hex(tx_hash)
        if int(receipt['status']) != 1:
            raise OnChainRejection(f'{label} reverted tx_hash={tx_hex}', chain_slug=self.chain_slug)
        return tx_hex

    def sign_digest(self, digest: bytes) -> bytes:
        return sign_digest(self.account, digest)
