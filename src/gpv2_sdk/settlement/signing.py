"""Order Signing for the settlement contract.

Provides order signatures for the four supported schemes:
- EIP-712 typed data (signed with any `TypedDataSigner`)
- eth_sign messages (signed with any `MessageSigner`)
- EIP-1271 smart contract signatures (attached out-of-band)
- Pre-signatures (set with an on-chain transaction)
"""

import logging
from typing import Any, Dict, Mapping, Protocol, Union

from eth_account import Account
from eth_account.messages import encode_defunct, encode_typed_data
from eth_abi.packed import encode_packed
from eth_utils import keccak

from .errors import UnsupportedOperationError, ValidationError
from .order import order_signing_hashes, order_typed_data
from .types import (
    ECDSA_SCHEMES,
    ORDER_TYPES,
    EcdsaSignature,
    EIP712Domain,
    Eip1271Signature,
    Eip1271SignatureData,
    NormalizedOrder,
    Order,
    PreSignSignature,
    Signature,
    SigningScheme,
)
from .utils import to_byte_string, to_checksum, to_hex_string

logger = logging.getLogger(__name__)

DOMAIN_NAME = "Gnosis Protocol"
DOMAIN_VERSION = "v2"

# Byte length of a packed `r || s || v` ECDSA signature
ECDSA_SIGNATURE_LENGTH = 65

# bytes4(keccak256("isValidSignature(bytes32,bytes)"))
EIP1271_MAGICVALUE = to_hex_string(keccak(text="isValidSignature(bytes32,bytes)")[:4])

# Marker value stored on-chain when a pre-signature is set
PRE_SIGNED = to_hex_string(keccak(text="GPv2Signing.Scheme.PreSign"))

# Prefix separating EIP-1271 order messages from EIP-712 (0x1901) digests
EIP1271_MESSAGE_PREFIX = b"\x19\x2a"


def domain(chain_id: int, verifying_contract: str) -> EIP712Domain:
    """Create the EIP-712 domain for the settlement contract.

    Args:
        chain_id: Chain ID of the network (1 for Ethereum mainnet)
        verifying_contract: Address of the settlement contract

    Returns:
        EIP-712 domain dictionary

    Raises:
        ValidationError: If the settlement contract address is invalid
    """
    return {
        "name": DOMAIN_NAME,
        "version": DOMAIN_VERSION,
        "chainId": chain_id,
        "verifyingContract": to_checksum(verifying_contract, "verifying_contract"),
    }


class TypedDataSigner(Protocol):
    """Protocol for signers that can sign EIP-712 typed data."""

    async def get_address(self) -> str:
        """Get the signer's address."""
        ...

    async def sign_typed_data(self, params: Dict[str, Any]) -> str:
        """Sign EIP-712 typed data.

        Args:
            params: Dict with domain, types, primaryType, and message

        Returns:
            Signature as hex string
        """
        ...


class MessageSigner(Protocol):
    """Protocol for signers that can sign arbitrary messages (`eth_sign`)."""

    async def get_address(self) -> str:
        """Get the signer's address."""
        ...

    async def sign_message(self, message: bytes) -> str:
        """Sign a message with the EIP-191 personal message prefix.

        Returns:
            Signature as hex string
        """
        ...


OrderSigner = Union[TypedDataSigner, MessageSigner]


class AccountSigner:
    """Signer backed by a local `eth_account` account.

    Implements both `TypedDataSigner` and `MessageSigner`.
    """

    def __init__(self, account):
        self._account = account

    @classmethod
    def from_key(cls, private_key: str) -> "AccountSigner":
        return cls(Account.from_key(private_key))

    @property
    def address(self) -> str:
        return self._account.address

    async def get_address(self) -> str:
        return self._account.address

    async def sign_typed_data(self, params: Dict[str, Any]) -> str:
        signed = self._account.sign_typed_data(
            domain_data=params["domain"],
            message_types=params["types"],
            message_data=params["message"],
        )
        return to_hex_string(signed.signature)

    async def sign_message(self, message: bytes) -> str:
        signed = self._account.sign_message(encode_defunct(primitive=message))
        return to_hex_string(signed.signature)


def order_typed_data_params(
    domain: Mapping[str, Any], order: Union[Order, NormalizedOrder]
) -> Dict[str, Any]:
    """Build the `sign_typed_data` request for an order."""
    return {
        "domain": dict(domain),
        "types": ORDER_TYPES,
        "primaryType": "Order",
        "message": order_typed_data(order),
    }


def ethsign_message(
    domain: Mapping[str, Any], order: Union[Order, NormalizedOrder]
) -> bytes:
    """Message signed for `ETHSIGN` orders: keccak256(domainSeparator || structHash)."""
    domain_hash, struct_hash = order_signing_hashes(domain, order)
    return keccak(domain_hash + struct_hash)


def eip1271_message(
    domain: Mapping[str, Any], order: Union[Order, NormalizedOrder]
) -> str:
    """Compute the message a smart contract wallet is asked to validate.

    The message is keccak256(0x192a || domainSeparator || structHash); the
    prefix keeps it apart from EIP-712 digests so an unrelated signature
    request can never approve an order.

    Returns:
        bytes32 hex string message
    """
    domain_hash, struct_hash = order_signing_hashes(domain, order)
    return to_hex_string(keccak(EIP1271_MESSAGE_PREFIX + domain_hash + struct_hash))


def validate_signature_length(signature: Signature) -> None:
    """Check that an ECDSA signature payload is exactly 65 bytes.

    This does not check that the signature is cryptographically valid; the
    settlement contract does that when the trade is executed.

    Raises:
        ValidationError: If an ECDSA signature has the wrong length
    """
    if signature.scheme not in ECDSA_SCHEMES:
        return
    length = len(to_byte_string(signature.data, "signature"))
    if length != ECDSA_SIGNATURE_LENGTH:
        raise ValidationError(
            f"Invalid {SigningScheme(signature.scheme).name} signature length: "
            f"expected {ECDSA_SIGNATURE_LENGTH} bytes, got {length}"
        )


def _ecdsa_signature_bytes(signature: EcdsaSignature) -> bytes:
    validate_signature_length(signature)
    data = to_byte_string(signature.data, "signature")
    v = data[64]
    if v < 27:
        v += 27
    return data[:64] + bytes([v])


def encode_eip1271_signature_data(data: Eip1271SignatureData) -> bytes:
    """Encode EIP-1271 signature data as `verifier || uint32 length || signature`."""
    signature = to_byte_string(data.signature, "signature")
    return encode_packed(
        ["address", "uint32"],
        [to_checksum(data.verifier, "verifier"), len(signature)],
    ) + signature


def encode_signature_data(signature: Signature) -> bytes:
    """Encode the scheme specific signature bytes of a trade.

    Raises:
        ValidationError: If the signature payload is malformed
    """
    if isinstance(signature, EcdsaSignature):
        return _ecdsa_signature_bytes(signature)
    if isinstance(signature, Eip1271Signature):
        return encode_eip1271_signature_data(signature.data)
    if isinstance(signature, PreSignSignature):
        return bytes.fromhex(to_checksum(signature.data, "owner")[2:])
    raise UnsupportedOperationError(f"Unsupported signature: {signature!r}")


async def sign_order(
    domain: Mapping[str, Any],
    order: Union[Order, NormalizedOrder],
    signer: OrderSigner,
    scheme: SigningScheme,
) -> EcdsaSignature:
    """Sign an order using any compatible signer.

    Only ECDSA schemes are produced here: EIP-1271 signatures come from the
    owning contract and pre-signatures from an on-chain transaction.

    Args:
        domain: EIP-712 domain of the settlement contract
        order: The order to sign
        signer: A `TypedDataSigner` (EIP712) or `MessageSigner` (ETHSIGN)
        scheme: The signing scheme to use

    Returns:
        The ECDSA signature

    Raises:
        UnsupportedOperationError: If the scheme cannot be signed directly or
            the signer lacks the required capability
        ValidationError: If the signer returns a malformed signature
    """
    scheme = SigningScheme(scheme)
    if scheme == SigningScheme.EIP712:
        if not hasattr(signer, "sign_typed_data"):
            raise UnsupportedOperationError("signer does not support signing typed data")
        data = await signer.sign_typed_data(order_typed_data_params(domain, order))
    elif scheme == SigningScheme.ETHSIGN:
        if not hasattr(signer, "sign_message"):
            raise UnsupportedOperationError("signer does not support signing messages")
        data = await signer.sign_message(ethsign_message(domain, order))
    else:
        raise UnsupportedOperationError(f"scheme not signable directly: {scheme.name}")

    if isinstance(data, (bytes, bytearray)):
        data = to_hex_string(data)
    signature = EcdsaSignature(scheme=scheme, data=data)
    validate_signature_length(signature)
    logger.debug("Signed order with %s", scheme.name)
    return signature


def sign_order_with_key(
    private_key: str,
    domain: Mapping[str, Any],
    order: Union[Order, NormalizedOrder],
    scheme: SigningScheme = SigningScheme.EIP712,
) -> EcdsaSignature:
    """Sign an order with a private key.

    Use this when you have direct access to a private key.

    Args:
        private_key: Private key (hex string with or without 0x prefix)
        domain: EIP-712 domain of the settlement contract
        order: The order to sign
        scheme: EIP712 (default) or ETHSIGN

    Returns:
        The ECDSA signature
    """
    account = Account.from_key(private_key)
    scheme = SigningScheme(scheme)
    if scheme == SigningScheme.EIP712:
        signed = account.sign_typed_data(
            domain_data=dict(domain),
            message_types=ORDER_TYPES,
            message_data=order_typed_data(order),
        )
    elif scheme == SigningScheme.ETHSIGN:
        signed = account.sign_message(encode_defunct(primitive=ethsign_message(domain, order)))
    else:
        raise UnsupportedOperationError(f"scheme not signable directly: {scheme.name}")

    return EcdsaSignature(scheme=scheme, data=to_hex_string(signed.signature))


def recover_order_signer(
    domain: Mapping[str, Any],
    order: Union[Order, NormalizedOrder],
    signature: Signature,
) -> str:
    """Recover the owner of an order from its signature.

    ECDSA signatures are recovered locally. EIP-1271 and pre-signed orders
    name their owner in the signature data; whether the owner actually
    approved the order can only be checked on-chain.

    Returns:
        Checksummed owner address
    """
    if isinstance(signature, Eip1271Signature):
        return to_checksum(signature.data.verifier, "verifier")
    if isinstance(signature, PreSignSignature):
        return to_checksum(signature.data, "owner")

    data = _ecdsa_signature_bytes(signature)
    if signature.scheme == SigningScheme.EIP712:
        signable_message = encode_typed_data(
            domain_data=dict(domain),
            message_types=ORDER_TYPES,
            message_data=order_typed_data(order),
        )
    else:
        signable_message = encode_defunct(primitive=ethsign_message(domain, order))
    return Account.recover_message(signable_message, signature=data)


def verify_order_signature(
    domain: Mapping[str, Any],
    order: Union[Order, NormalizedOrder],
    signature: Signature,
    expected_owner: str,
) -> bool:
    """Verify an ECDSA order signature locally.

    Note: For EIP-1271 signatures this only checks the verifier address;
    the signature itself must be verified on-chain.

    Returns:
        True if the signature recovers to the expected owner
    """
    try:
        recovered = recover_order_signer(domain, order, signature)
    except (ValidationError, ValueError) as e:
        logger.debug("Signature recovery failed: %s", e)
        return False
    return recovered.lower() == expected_owner.lower()
