"""
GeoCert Configuration System
=============================

Central configuration using Pydantic Settings. Supports:
- Environment variables (GEOCERT_ prefix, ``__`` for nested fields)
- .env file loading
- YAML config file overrides

The config produces a deterministic hash for reproducibility tracking.
Key material is excluded from the hash.

Usage:
    from geocert.config import get_config
    cfg = get_config()                        # loads from env / .env
    cfg = get_config("configs/base.yaml")     # loads with YAML overrides

    export GEOCERT_SIGNER_PRIVATE_KEY=0x...
    export GEOCERT_SIGNING__CHAIN_ID=8453
    export GEOCERT_SCHEMAS__NUMERIC=0x...
"""

from __future__ import annotations

import hashlib
import json
from typing import Optional

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# ── Chain constants ────────────────────────────────────────────────
BASE_SEPOLIA = 84532
BASE_MAINNET = 8453
SEPOLIA = 11155111
ETHEREUM = 1

DEFAULT_EAS_ADDRESSES: dict[int, str] = {
    BASE_SEPOLIA: "0x4200000000000000000000000000000000000021",
    BASE_MAINNET: "0x4200000000000000000000000000000000000021",
    SEPOLIA: "0xC2679fBD37d54388Ce493F1DB75320D236e1815e",
    ETHEREUM: "0xA1207F3BBa224E2c9c3c6D5aF63D0eb1582Ce587",
}

DEFAULT_RPC_URLS: dict[int, str] = {
    BASE_SEPOLIA: "https://sepolia.base.org",
    BASE_MAINNET: "https://mainnet.base.org",
    SEPOLIA: "https://sepolia.gateway.tenderly.co",
    ETHEREUM: "https://eth.llamarpc.com",
}


# ── Sub-configs ────────────────────────────────────────────────────
class SigningConfig(BaseModel):
    """Configuration for the delegated attestation signer."""
    chain_id: int = Field(default=BASE_SEPOLIA, description="Chain the attestations target")
    domain_name: str = Field(default="EAS", description="EIP-712 domain name")
    domain_version: str = Field(
        default="1.2.0",
        description="EIP-712 domain version (must match the deployed EAS contract)"
    )
    deadline_window_s: int = Field(
        default=3600, gt=0,
        description="Seconds from signing until the delegation deadline"
    )
    eas_addresses: dict[int, str] = Field(
        default_factory=lambda: dict(DEFAULT_EAS_ADDRESSES),
        description="Issuer (EAS) contract address per chain ID"
    )
    reserve_nonces: bool = Field(
        default=False,
        description="Track locally issued nonces so concurrent signatures never reuse one"
    )


class RegistryConfig(BaseModel):
    """Configuration for the on-chain attestation registry client."""
    rpc_urls: dict[int, str] = Field(
        default_factory=lambda: dict(DEFAULT_RPC_URLS),
        description="JSON-RPC endpoint per chain ID"
    )
    timeout_s: float = Field(default=10.0, gt=0, description="RPC request timeout")


class SchemaConfig(BaseModel):
    """Default EAS schema UIDs, used when a request does not name one."""
    numeric: Optional[str] = Field(default=None, description="Numeric policy schema UID")
    boolean: Optional[str] = Field(default=None, description="Boolean policy schema UID")
    verify: Optional[str] = Field(default=None, description="Credibility attestation schema UID")


class SpatialConfig(BaseModel):
    """Configuration for the spatial engine boundary."""
    timeout_s: float = Field(default=15.0, gt=0, description="Per-operation timeout")


class OffchainConfig(BaseModel):
    """Configuration for resolving off-chain references by URI."""
    timeout_s: float = Field(default=10.0, gt=0, description="Fetch timeout")
    max_bytes: int = Field(default=1_048_576, gt=0, description="Maximum accepted document size")


class VerifyConfig(BaseModel):
    """
    Scoring constants for evidence verification.

    These are heuristics, not calibrated probabilities. They live in
    config so that every attestation can be traced back to the exact
    constants used (via ``config_hash``).
    """
    temporal_weight: float = Field(default=0.4, ge=0.0, le=1.0)
    spatial_weight: float = Field(default=0.6, ge=0.0, le=1.0)
    support_threshold: float = Field(default=0.5, ge=0.0, le=1.0)
    radius_decay_factor: float = Field(
        default=3.0, gt=1.0,
        description="Spatial score decays linearly to 0 at this multiple of the claim radius"
    )
    non_point_spatial_score: float = Field(
        default=0.5, ge=0.0, le=1.0,
        description="Neutral spatial score for non-point geometry comparisons"
    )
    single_stamp_cap: float = Field(default=0.85, ge=0.0, le=1.0)
    invalid_floor: float = Field(default=0.1, ge=0.0, le=1.0)
    inconsistent_signal_factor: float = Field(default=0.8, ge=0.0, le=1.0)
    independence_threshold: float = Field(default=0.5, ge=0.0, le=1.0)
    independence_bonus_scale: float = Field(default=0.2, ge=0.0)
    agreement_threshold: float = Field(default=0.7, ge=0.0, le=1.0)
    agreement_bonus_scale: float = Field(default=0.15, ge=0.0)
    invalid_stamp_penalty: float = Field(default=0.05, ge=0.0)
    neutral_agreement: float = Field(default=0.5, ge=0.0, le=1.0)
    verify_signatures: bool = Field(
        default=False,
        description="Recover eth-address stamp signatures instead of checking format only"
    )


# ── Main Config ────────────────────────────────────────────────────
class GeoCertConfig(BaseSettings):
    """
    Root configuration for GeoCert.

    Loads from environment variables (GEOCERT_ prefix) and .env file.
    Can be extended with YAML overrides via `get_config(yaml_path)`.

    Example:
        export GEOCERT_SIGNER_PRIVATE_KEY=0xac09...
        export GEOCERT_SIGNING__CHAIN_ID=84532
    """
    model_config = SettingsConfigDict(
        env_prefix="GEOCERT_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
    )

    # ── Top-level settings ─────────────────────────────────────────
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str = Field(default="text", description="Log format: 'json' or 'text'")

    # ── Key material (never hashed, never logged) ──────────────────
    signer_private_key: Optional[str] = Field(default=None, description="Hex private key")
    signer_mnemonic: Optional[str] = Field(default=None, description="BIP-39 mnemonic")

    # ── Sub-configs ────────────────────────────────────────────────
    signing: SigningConfig = Field(default_factory=SigningConfig)
    registry: RegistryConfig = Field(default_factory=RegistryConfig)
    schemas: SchemaConfig = Field(default_factory=SchemaConfig)
    spatial: SpatialConfig = Field(default_factory=SpatialConfig)
    offchain: OffchainConfig = Field(default_factory=OffchainConfig)
    verify: VerifyConfig = Field(default_factory=VerifyConfig)

    @property
    def has_key_material(self) -> bool:
        """Check whether a signing key can be loaded."""
        return bool(self.signer_private_key or self.signer_mnemonic)

    def config_hash(self) -> str:
        """
        Produce a deterministic SHA-256 hash of the configuration.

        Two services with the same config hash apply the same scoring
        constants and sign under the same domain.
        """
        config_dict = self.model_dump(
            mode="json",
            exclude={"signer_private_key", "signer_mnemonic"},
        )
        canonical = json.dumps(config_dict, sort_keys=True, default=str)
        return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:16]


# ── Config Loading ─────────────────────────────────────────────────
def get_config(yaml_path: Optional[str] = None) -> GeoCertConfig:
    """
    Load GeoCert configuration.

    Priority (highest to lowest):
        1. Explicit YAML values (if provided)
        2. Environment variables (GEOCERT_ prefix)
        3. .env file
        4. Default values

    Args:
        yaml_path: Optional path to a YAML config file for overrides.

    Returns:
        Fully resolved GeoCertConfig instance.
    """
    if yaml_path:
        import yaml
        with open(yaml_path) as f:
            overrides = yaml.safe_load(f) or {}
        return GeoCertConfig(**overrides)
    return GeoCertConfig()
