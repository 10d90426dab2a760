from __future__ import annotations

from eth_abi import encode
from eth_account.messages import encode_defunct
from eth_account.signers.local import LocalAccount
from web3 import Web3

PROPOSE_GAS_LIMIT_UPDATE = 'PROPOSE_GAS_LIMIT_UPDATE'
ATTEST_GAS_LIMIT_UPDATE = 'ATTEST_GAS_LIMIT_UPDATE'
EXECUTION_OVERHEAD_UPDATE = 'EXECUTION_OVERHEAD_UPDATE'

UPDATE_TAGS = {PROPOSE_GAS_LIMIT_UPDATE, ATTEST_GAS_LIMIT_UPDATE, EXECUTION_OVERHEAD_UPDATE}

# Field order is fixed; the registry contracts rebuild the same tuple.
UPDATE_MESSAGE_TYPES = ['string', 'uint256', 'uint256', 'uint256', 'uint256']

UINT256_MAX = 2**256 - 1


def _require_uint256(value: int, field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f'{field} must be an integer, got {type(value).__name__}')
    if value < 0 or value > UINT256_MAX:
        raise ValueError(f'{field} out of uint256 range: {value}')
    return value


def encode_update(tag: str, src_chain_slug: int, dst_chain_slug: int, nonce: int, value: int) -> bytes:
    if tag not in UPDATE_TAGS:
        raise ValueError(f'unsupported update tag: {tag}')
    return encode(
        UPDATE_MESSAGE_TYPES,
        [
            tag,
            _require_uint256(src_chain_slug, 'src_chain_slug'),
            _require_uint256(dst_chain_slug, 'dst_chain_slug'),
            _require_uint256(nonce, 'nonce'),
            _require_uint256(value, 'value')
        ]
    )


def update_digest(tag: str, src_chain_slug: int, dst_chain_slug: int, nonce: int, value: int) -> bytes:
    return bytes(Web3.keccak(encode_update(tag, src_chain_slug, dst_chain_slug, nonce, value)))


def sign_digest(account: LocalAccount, digest: bytes) -> bytes:
    # EIP-191 personal message over the raw 32 bytes, as the contracts expect.
    if len(digest) != 32:
        raise ValueError(f'digest must be 32 bytes, got {len(digest)}')
    signed = account.sign_message(encode_defunct(primitive=digest))
    return bytes(signed.signature)
