"""
Delegated Attestation Signer
==============================

Builds and signs EAS ``Attest`` messages (EIP-712) so that a third
party can submit them on-chain while the signer remains the attester.

The signature is over a domain-separated hash:

    domain  = {name: "EAS", version: "1.2.0", chainId, verifyingContract}
    message = {schema, recipient, expirationTime=0, revocable=true,
               refUID=0x0…0, data, value=0, nonce, deadline}

Nonces:
    The registry's ``getNonce`` is the source of truth. Acquisition is
    serialized by the ``SigningContext`` lock. With ``reserve_nonces``
    the context also remembers the last nonce it issued and hands out
    ``max(chain_nonce, last_issued + 1)``, so concurrent requests never
    share a nonce before any of them has been submitted.

Determinism:
    ``sign_message`` is a pure function of (message, key, domain).
    ECDSA here uses RFC 6979 nonces, so re-signing an identical message
    yields an identical signature.

Usage:
    context = SigningContext.from_config(config, registry)
    signer = DelegatedAttestationSigner(context)
    result = await signer.sign_numeric(data, schema_uid, recipient)
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Optional

from eth_account import Account
from eth_account.messages import encode_typed_data
from eth_account.signers.local import LocalAccount
from eth_utils import to_checksum_address
from pydantic import ValidationError

from geocert.config import DEFAULT_EAS_ADDRESSES, GeoCertConfig
from geocert.errors import (
    InvalidInputError,
    SignerNotInitializedError,
    UnsupportedChainError,
)
from geocert.resolve.registry import AttestationRegistry
from geocert.schemas.attestation import (
    ZERO_ADDRESS,
    AttestationView,
    BooleanPolicyAttestationData,
    CredibilityAttestationData,
    DelegatedAttestationMessage,
    DelegationView,
    NumericPolicyAttestationData,
    SignatureParts,
    SigningResult,
)
from geocert.signing.encoder import encode_boolean, encode_credibility, encode_numeric
from geocert.utils import unix_now

logger = logging.getLogger("geocert.signing.signer")

ATTEST_TYPES = [
    {"name": "schema", "type": "bytes32"},
    {"name": "recipient", "type": "address"},
    {"name": "expirationTime", "type": "uint64"},
    {"name": "revocable", "type": "bool"},
    {"name": "refUID", "type": "bytes32"},
    {"name": "data", "type": "bytes"},
    {"name": "value", "type": "uint256"},
    {"name": "nonce", "type": "uint256"},
    {"name": "deadline", "type": "uint64"},
]

EIP712_DOMAIN_TYPES = [
    {"name": "name", "type": "string"},
    {"name": "version", "type": "string"},
    {"name": "chainId", "type": "uint256"},
    {"name": "verifyingContract", "type": "address"},
]


def build_typed_data(message: DelegatedAttestationMessage, domain: dict[str, Any]) -> dict[str, Any]:
    """
    Assemble the full EIP-712 structure for an ``Attest`` message.

    Byte fields are passed as ``bytes`` and addresses are checksummed,
    so the result can be fed directly to ``encode_typed_data``.
    """
    return {
        "types": {"EIP712Domain": EIP712_DOMAIN_TYPES, "Attest": ATTEST_TYPES},
        "primaryType": "Attest",
        "domain": {
            "name": domain["name"],
            "version": domain["version"],
            "chainId": int(domain["chainId"]),
            "verifyingContract": to_checksum_address(domain["verifyingContract"]),
        },
        "message": {
            "schema": bytes.fromhex(message.schema_uid[2:]),
            "recipient": to_checksum_address(message.recipient),
            "expirationTime": message.expiration_time,
            "revocable": message.revocable,
            "refUID": bytes.fromhex(message.ref_uid[2:]),
            "data": bytes.fromhex(message.data[2:]),
            "value": message.value,
            "nonce": message.nonce,
            "deadline": message.deadline,
        },
    }


def recover_attester(
    message: DelegatedAttestationMessage, signature: str, domain: dict[str, Any]
) -> str:
    """Address whose key produced ``signature`` over ``message`` under ``domain``."""
    signable = encode_typed_data(full_message=build_typed_data(message, domain))
    return Account.recover_message(signable, signature=signature)


class SigningContext:
    """
    Everything a signer needs that outlives one request.

    The context is created by the caller (service, CLI, test) and passed
    to the signer; there is no module-level signer state.

    Args:
        account: Signing key, or None when no key material is configured.
        chain_id: Chain the attestations target.
        registry: Source of the authoritative nonce.
        eas_addresses: EAS contract address per chain ID.
        domain_name: EIP-712 domain name.
        domain_version: EIP-712 domain version.
        deadline_window_s: Seconds between signing and the deadline.
        reserve_nonces: Track locally issued nonces (see module docstring).
        clock: Returns current Unix seconds.
    """

    def __init__(
        self,
        account: Optional[LocalAccount],
        chain_id: int,
        registry: AttestationRegistry,
        eas_addresses: Optional[dict[int, str]] = None,
        domain_name: str = "EAS",
        domain_version: str = "1.2.0",
        deadline_window_s: int = 3600,
        reserve_nonces: bool = False,
        clock: Callable[[], int] = unix_now,
    ):
        self.eas_addresses = dict(eas_addresses or DEFAULT_EAS_ADDRESSES)
        if chain_id not in self.eas_addresses:
            raise UnsupportedChainError(chain_id, list(self.eas_addresses))

        self._account = account
        self.chain_id = chain_id
        self.registry = registry
        self.domain_name = domain_name
        self.domain_version = domain_version
        self.deadline_window_s = deadline_window_s
        self.reserve_nonces = reserve_nonces
        self.clock = clock

        self._nonce_lock = asyncio.Lock()
        self._last_issued: Optional[int] = None

    @classmethod
    def from_config(
        cls,
        config: GeoCertConfig,
        registry: AttestationRegistry,
        clock: Callable[[], int] = unix_now,
    ) -> "SigningContext":
        """Build a context from config; a missing key yields an unready context."""
        account = None
        if config.has_key_material:
            if config.signer_private_key:
                account = Account.from_key(config.signer_private_key)
            else:
                Account.enable_unaudited_hdwallet_features()
                account = Account.from_mnemonic(config.signer_mnemonic)

        context = cls(
            account=account,
            chain_id=config.signing.chain_id,
            registry=registry,
            eas_addresses=config.signing.eas_addresses,
            domain_name=config.signing.domain_name,
            domain_version=config.signing.domain_version,
            deadline_window_s=config.signing.deadline_window_s,
            reserve_nonces=config.signing.reserve_nonces,
            clock=clock,
        )
        if account is not None:
            logger.info(f"Attestation signer initialized: {account.address} (chain {context.chain_id})")
        else:
            logger.warning("No signer key configured; signing operations will fail")
        return context

    @property
    def is_ready(self) -> bool:
        return self._account is not None

    @property
    def account(self) -> LocalAccount:
        if self._account is None:
            raise SignerNotInitializedError()
        return self._account

    @property
    def address(self) -> str:
        return self.account.address

    @property
    def verifying_contract(self) -> str:
        return self.eas_addresses[self.chain_id]

    def domain(self) -> dict[str, Any]:
        return {
            "name": self.domain_name,
            "version": self.domain_version,
            "chainId": self.chain_id,
            "verifyingContract": self.verifying_contract,
        }

    async def acquire_nonce(self) -> int:
        """Next nonce for this signer; serialized across concurrent callers."""
        address = self.address
        async with self._nonce_lock:
            chain_nonce = await self.registry.get_nonce(address, self.chain_id)
            if not self.reserve_nonces:
                return chain_nonce

            if self._last_issued is None or chain_nonce > self._last_issued:
                nonce = chain_nonce
            else:
                nonce = self._last_issued + 1
            self._last_issued = nonce
            return nonce


class DelegatedAttestationSigner:
    """
    Signs delegated attestations under a ``SigningContext``.

    Args:
        context: Key, domain, nonce source and clock.
    """

    def __init__(self, context: SigningContext):
        self.context = context

    def sign_message(self, message: DelegatedAttestationMessage) -> tuple[str, SignatureParts]:
        """
        Sign a fully built message.

        Returns:
            (combined 65-byte signature as 0x-hex, split v/r/s parts)
        """
        typed_data = build_typed_data(message, self.context.domain())
        signed = self.context.account.sign_message(encode_typed_data(full_message=typed_data))
        signature = "0x" + bytes(signed.signature).hex()
        parts = SignatureParts(
            v=signed.v,
            r="0x" + signed.r.to_bytes(32, "big").hex(),
            s="0x" + signed.s.to_bytes(32, "big").hex(),
        )
        return signature, parts

    async def sign(
        self,
        encoded_data: str,
        schema_uid: str,
        recipient: str = ZERO_ADDRESS,
    ) -> SigningResult:
        """
        Sign ABI-encoded attestation data.

        Args:
            encoded_data: 0x-hex payload from the schema encoder.
            schema_uid: EAS schema the payload conforms to.
            recipient: Attestation recipient (zero address when none).

        Returns:
            SigningResult with attestation and delegation views.
        """
        attester = self.context.address

        # Validate everything except nonce/deadline before touching the registry.
        try:
            DelegatedAttestationMessage(
                schema_uid=schema_uid, recipient=recipient, data=encoded_data, nonce=0, deadline=0
            )
        except ValidationError as e:
            raise InvalidInputError(
                f"Invalid attestation message (schema={schema_uid}, recipient={recipient}): {e}"
            ) from e

        nonce = await self.context.acquire_nonce()
        deadline = self.context.clock() + self.context.deadline_window_s
        message = DelegatedAttestationMessage(
            schema_uid=schema_uid,
            recipient=recipient,
            data=encoded_data,
            nonce=nonce,
            deadline=deadline,
        )

        signature, parts = self.sign_message(message)
        logger.info(
            f"Signed delegated attestation: attester={attester} nonce={nonce} "
            f"deadline={deadline} schema={schema_uid}"
        )

        return SigningResult(
            attestation=AttestationView(
                schema_uid=schema_uid,
                attester=attester,
                recipient=recipient,
                data=encoded_data,
                signature=signature,
            ),
            delegation=DelegationView(
                signature=signature,
                attester=attester,
                deadline=deadline,
                nonce=nonce,
            ),
            message=message,
            signature_parts=parts,
        )

    async def sign_numeric(
        self, data: NumericPolicyAttestationData, schema_uid: str, recipient: str = ZERO_ADDRESS
    ) -> SigningResult:
        return await self.sign(encode_numeric(data), schema_uid, recipient)

    async def sign_boolean(
        self, data: BooleanPolicyAttestationData, schema_uid: str, recipient: str = ZERO_ADDRESS
    ) -> SigningResult:
        return await self.sign(encode_boolean(data), schema_uid, recipient)

    async def sign_credibility(
        self, data: CredibilityAttestationData, schema_uid: str, recipient: str = ZERO_ADDRESS
    ) -> SigningResult:
        return await self.sign(encode_credibility(data), schema_uid, recipient)
