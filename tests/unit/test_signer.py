"""
Delegated Signer Tests
========================

EIP-712 signing of EAS ``Attest`` messages:
    - the signature recovers to the configured attester
    - any change to message or domain breaks recovery
    - signatures are deterministic
    - nonces come from the registry and never collide in reserve mode
    - a context without key material refuses to sign
"""

from __future__ import annotations

import asyncio

import pytest
from eth_account import Account

from geocert.config import BASE_MAINNET, GeoCertConfig, SigningConfig
from geocert.errors import InvalidInputError, SignerNotInitializedError, UnsupportedChainError
from geocert.schemas.attestation import ZERO_ADDRESS, NumericPolicyAttestationData
from geocert.signing.encoder import decode_numeric, encode_numeric
from geocert.signing.signer import DelegatedAttestationSigner, SigningContext, recover_attester
from tests.conftest import (
    NOW,
    OTHER_PRIVATE_KEY,
    TEST_ADDRESS,
    TEST_CHAIN_ID,
    TEST_RECIPIENT,
    TEST_SCHEMA_UID,
    uid_of,
)


def _payload() -> str:
    return encode_numeric(NumericPolicyAttestationData(
        result=1234, units="centimeters", input_refs=(uid_of(1),), timestamp=NOW, operation="distance"
    ))


class TestSigningContext:

    def test_from_private_key(self, signing_context):
        assert signing_context.is_ready
        assert signing_context.address == TEST_ADDRESS
        assert signing_context.chain_id == TEST_CHAIN_ID

    def test_domain(self, signing_context):
        domain = signing_context.domain()
        assert domain["name"] == "EAS"
        assert domain["version"] == "1.2.0"
        assert domain["chainId"] == TEST_CHAIN_ID
        assert domain["verifyingContract"] == "0x4200000000000000000000000000000000000021"

    def test_from_mnemonic(self, registry):
        config = GeoCertConfig(
            _env_file=None,
            signer_mnemonic="test test test test test test test test test test test junk",
        )
        context = SigningContext.from_config(config, registry)
        assert context.address == TEST_ADDRESS

    def test_without_key_not_ready(self, registry):
        context = SigningContext.from_config(GeoCertConfig(_env_file=None), registry)
        assert not context.is_ready
        with pytest.raises(SignerNotInitializedError):
            _ = context.address

    def test_unsupported_chain(self, registry):
        with pytest.raises(UnsupportedChainError, match="999"):
            SigningContext(account=None, chain_id=999, registry=registry)


class TestDelegatedSigner:

    @pytest.mark.asyncio
    async def test_signature_recovers_to_attester(self, signer, signing_context):
        result = await signer.sign(_payload(), TEST_SCHEMA_UID, TEST_RECIPIENT)
        recovered = recover_attester(
            result.message, result.attestation.signature, signing_context.domain()
        )
        assert recovered == TEST_ADDRESS
        assert result.attestation.attester == TEST_ADDRESS
        assert result.delegation.attester == TEST_ADDRESS

    @pytest.mark.asyncio
    async def test_message_fields(self, signer):
        result = await signer.sign(_payload(), TEST_SCHEMA_UID)
        message = result.message
        assert message.recipient == ZERO_ADDRESS
        assert message.expiration_time == 0
        assert message.revocable is True
        assert message.ref_uid == "0x" + "00" * 32
        assert message.value == 0
        assert message.nonce == 0
        assert message.deadline == NOW + 3600
        assert result.delegation.deadline == message.deadline

    @pytest.mark.asyncio
    async def test_views_share_one_signature(self, signer):
        result = await signer.sign(_payload(), TEST_SCHEMA_UID)
        assert result.attestation.signature == result.delegation.signature
        assert len(result.attestation.signature) == 2 + 65 * 2
        assert result.signature_parts.v in (27, 28)

    @pytest.mark.asyncio
    async def test_data_is_the_encoded_payload(self, signer):
        result = await signer.sign(_payload(), TEST_SCHEMA_UID)
        assert decode_numeric(result.attestation.data).result == 1234

    @pytest.mark.asyncio
    @pytest.mark.parametrize("field, mutate", [
        ("schema_uid", lambda m: uid_of(2)),
        ("recipient", lambda m: TEST_RECIPIENT),
        ("expiration_time", lambda m: 1),
        ("revocable", lambda m: False),
        ("ref_uid", lambda m: uid_of(3)),
        ("data", lambda m: m.data + "00"),
        ("value", lambda m: 1),
        ("nonce", lambda m: m.nonce + 1),
        ("deadline", lambda m: m.deadline + 1),
    ])
    async def test_any_mutated_field_breaks_recovery(self, signer, signing_context, field, mutate):
        result = await signer.sign(_payload(), TEST_SCHEMA_UID)
        tampered = result.message.model_copy(update={field: mutate(result.message)})
        assert getattr(tampered, field) != getattr(result.message, field)
        recovered = recover_attester(tampered, result.attestation.signature, signing_context.domain())
        assert recovered != TEST_ADDRESS

    @pytest.mark.asyncio
    async def test_other_verifying_contract_does_not_recover(self, signer, signing_context):
        result = await signer.sign(_payload(), TEST_SCHEMA_UID)
        domain = {**signing_context.domain(), "verifyingContract": "0x" + "22" * 20}
        assert recover_attester(result.message, result.attestation.signature, domain) != TEST_ADDRESS

    @pytest.mark.asyncio
    async def test_other_chain_does_not_recover(self, signer, signing_context):
        """The chain ID is part of the domain separator."""
        result = await signer.sign(_payload(), TEST_SCHEMA_UID)
        domain = {**signing_context.domain(), "chainId": BASE_MAINNET}
        assert recover_attester(result.message, result.attestation.signature, domain) != TEST_ADDRESS

    @pytest.mark.asyncio
    async def test_deterministic(self, signer):
        result = await signer.sign(_payload(), TEST_SCHEMA_UID)
        first, _ = signer.sign_message(result.message)
        second, _ = signer.sign_message(result.message)
        assert first == second == result.attestation.signature

    @pytest.mark.asyncio
    async def test_different_key_different_attester(self, registry, clock, signing_context):
        other = SigningContext(
            account=Account.from_key(OTHER_PRIVATE_KEY),
            chain_id=TEST_CHAIN_ID,
            registry=registry,
            clock=clock,
        )
        result = await DelegatedAttestationSigner(other).sign(_payload(), TEST_SCHEMA_UID)
        recovered = recover_attester(result.message, result.attestation.signature, other.domain())
        assert recovered == other.address != TEST_ADDRESS

    @pytest.mark.asyncio
    async def test_bad_schema_rejected_before_nonce(self, signer, registry):
        with pytest.raises(InvalidInputError):
            await signer.sign(_payload(), "0x1234")
        assert registry.nonce_reads == 0

    @pytest.mark.asyncio
    async def test_bad_recipient_rejected(self, signer):
        with pytest.raises(InvalidInputError):
            await signer.sign(_payload(), TEST_SCHEMA_UID, recipient="not-an-address")

    @pytest.mark.asyncio
    async def test_not_initialized(self, registry):
        context = SigningContext(account=None, chain_id=TEST_CHAIN_ID, registry=registry)
        with pytest.raises(SignerNotInitializedError):
            await DelegatedAttestationSigner(context).sign(_payload(), TEST_SCHEMA_UID)


class TestNonces:

    @pytest.mark.asyncio
    async def test_nonce_read_from_registry(self, signer, registry):
        registry.set_nonce(TEST_ADDRESS, 7, TEST_CHAIN_ID)
        result = await signer.sign(_payload(), TEST_SCHEMA_UID)
        assert result.delegation.nonce == 7

    @pytest.mark.asyncio
    async def test_default_mode_follows_registry(self, signer):
        """Without reservation, unsubmitted signatures share the chain nonce."""
        results = await asyncio.gather(*(signer.sign(_payload(), TEST_SCHEMA_UID) for _ in range(3)))
        assert {r.delegation.nonce for r in results} == {0}

    @pytest.mark.asyncio
    async def test_reserved_nonces_unique_under_concurrency(self, registry, clock):
        config = GeoCertConfig(
            _env_file=None,
            signer_private_key="0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80",
            signing=SigningConfig(reserve_nonces=True),
        )
        signer = DelegatedAttestationSigner(SigningContext.from_config(config, registry, clock=clock))

        results = await asyncio.gather(*(signer.sign(_payload(), TEST_SCHEMA_UID) for _ in range(5)))
        assert sorted(r.delegation.nonce for r in results) == [0, 1, 2, 3, 4]

    @pytest.mark.asyncio
    async def test_reserved_nonces_catch_up_with_chain(self, registry, clock):
        context = SigningContext(
            account=Account.from_key(OTHER_PRIVATE_KEY),
            chain_id=TEST_CHAIN_ID,
            registry=registry,
            reserve_nonces=True,
            clock=clock,
        )
        assert await context.acquire_nonce() == 0
        assert await context.acquire_nonce() == 1
        registry.set_nonce(context.address, 10, TEST_CHAIN_ID)
        assert await context.acquire_nonce() == 10
        assert await context.acquire_nonce() == 11
