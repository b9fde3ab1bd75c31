"""
GeoCert Error Taxonomy
=======================

Every failure that can reach a caller is a ``GeoCertError`` subclass
carrying the fields of an RFC 7807 problem response. The transport
layer (HTTP router, CLI) only has to call ``to_problem()``.

Categories:
    - invalid-input        (400)  malformed geometry, bad UID, missing field
    - not-found            (404)  unknown reference or plugin
    - reference-revoked    (404)  referenced record was revoked
    - reference-expired    (404)  referenced record has expired
    - verification-failed  (401)  off-chain content or signature mismatch
    - rate-limited         (429)
    - computation-error    (500)  spatial engine failure, signer not ready
    - upstream-unavailable (503)  registry / engine / URI unreachable
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field, ValidationError

ERROR_TYPE_BASE = "https://geocert.dev/errors"


class ProblemDetails(BaseModel):
    """RFC 7807 problem response."""
    type: str = Field(description="URI identifying the problem category")
    title: str = Field(description="Short human-readable summary")
    status: int = Field(description="HTTP-equivalent status code")
    detail: str = Field(description="Human-readable explanation, including the causing value")
    instance: Optional[str] = Field(default=None, description="Request path or operation name")


class GeoCertError(Exception):
    """Base class for all GeoCert errors."""

    status: int = 500
    slug: str = "internal"
    title: str = "Internal Error"

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail

    @property
    def type(self) -> str:
        return f"{ERROR_TYPE_BASE}/{self.slug}"

    def to_problem(self, instance: Optional[str] = None) -> ProblemDetails:
        return ProblemDetails(
            type=self.type,
            title=self.title,
            status=self.status,
            detail=self.detail,
            instance=instance,
        )


class InvalidInputError(GeoCertError):
    status = 400
    slug = "invalid-input"
    title = "Invalid Input"


class UnsupportedChainError(InvalidInputError):
    slug = "unsupported-chain"
    title = "Unsupported Chain"

    def __init__(self, chain_id: int, supported: Optional[list[int]] = None):
        detail = f"Unsupported chain ID: {chain_id}"
        if supported is not None:
            detail += f". Supported chains: {', '.join(str(c) for c in sorted(supported))}"
        super().__init__(detail)
        self.chain_id = chain_id


class NotFoundError(GeoCertError):
    status = 404
    slug = "not-found"
    title = "Not Found"


class RevokedError(NotFoundError):
    slug = "reference-revoked"
    title = "Reference Revoked"


class ExpiredError(NotFoundError):
    slug = "reference-expired"
    title = "Reference Expired"


class PluginNotFoundError(NotFoundError):
    slug = "plugin-not-found"
    title = "Plugin Not Found"

    def __init__(self, name: str, available: list[str]):
        listed = ", ".join(available) or "none"
        super().__init__(f"Plugin '{name}' not found. Available plugins: {listed}")
        self.name = name


class VerificationFailedError(GeoCertError):
    status = 401
    slug = "verification-failed"
    title = "Verification Failed"


class UnverifiedError(VerificationFailedError):
    """Off-chain content does not match its declared identifier or signer."""
    slug = "unverified-reference"
    title = "Unverified Reference"


class RateLimitedError(GeoCertError):
    status = 429
    slug = "rate-limited"
    title = "Rate Limited"

    def __init__(self, detail: str = "Too many requests. Please try again later."):
        super().__init__(detail)


class ComputationError(GeoCertError):
    status = 500
    slug = "computation-error"
    title = "Computation Error"


class SignerNotInitializedError(ComputationError):
    slug = "signer-not-ready"
    title = "Signer Not Ready"

    def __init__(self, detail: str = "Signer not initialized: no private key or mnemonic configured"):
        super().__init__(detail)


class UpstreamUnavailableError(GeoCertError):
    status = 503
    slug = "upstream-unavailable"
    title = "Upstream Unavailable"


def to_problem(exc: BaseException, instance: Optional[str] = None) -> ProblemDetails:
    """
    Map any exception to a problem response.

    GeoCertErrors map to their own category, pydantic validation errors
    become 400s, and anything else is reported as a 500 with the
    exception message preserved.
    """
    if isinstance(exc, GeoCertError):
        return exc.to_problem(instance)

    if isinstance(exc, ValidationError):
        return ProblemDetails(
            type=f"{ERROR_TYPE_BASE}/validation",
            title="Validation Error",
            status=400,
            detail=str(exc),
            instance=instance,
        )

    return ProblemDetails(
        type=f"{ERROR_TYPE_BASE}/internal",
        title="Internal Error",
        status=500,
        detail=f"{type(exc).__name__}: {exc}",
        instance=instance,
    )
