"""Pydantic schemas for passkey (WebAuthn) endpoints."""

from __future__ import annotations

from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field

Base64Url = Annotated[str, Field(pattern=r"^[A-Za-z0-9_-]*={0,2}$")]
NonEmptyBase64Url = Annotated[str, Field(min_length=1, pattern=r"^[A-Za-z0-9_-]+={0,2}$")]


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


# -- Credential payloads (browser PublicKeyCredential JSON) --


class AttestationResponse(_WireModel):
    client_data_json: NonEmptyBase64Url = Field(..., alias="clientDataJSON")
    attestation_object: NonEmptyBase64Url = Field(..., alias="attestationObject")
    transports: list[str] | None = Field(None, description="Authenticator transports hint.")


class AssertionResponse(_WireModel):
    client_data_json: NonEmptyBase64Url = Field(..., alias="clientDataJSON")
    authenticator_data: NonEmptyBase64Url = Field(..., alias="authenticatorData")
    signature: NonEmptyBase64Url
    user_handle: Base64Url | None = Field(None, alias="userHandle")


class _PublicKeyCredential(_WireModel):
    id: NonEmptyBase64Url
    raw_id: NonEmptyBase64Url = Field(..., alias="rawId")
    type: Literal["public-key"] = "public-key"
    authenticator_attachment: Literal["platform", "cross-platform"] | None = Field(
        None, alias="authenticatorAttachment"
    )
    client_extension_results: dict[str, Any] = Field(
        default_factory=dict, alias="clientExtensionResults"
    )

    def to_webauthn_json(self) -> dict[str, Any]:
        """Dump back to the camelCase JSON shape py_webauthn parses."""
        return self.model_dump(by_alias=True, exclude_none=True)


class RegistrationCredential(_PublicKeyCredential):
    """Output of ``navigator.credentials.create()``."""

    response: AttestationResponse


class AuthenticationCredential(_PublicKeyCredential):
    """Output of ``navigator.credentials.get()``."""

    response: AssertionResponse


# -- Ceremony requests / responses --


class CeremonyStartResponse(BaseModel):
    flow_id: str = Field(..., description="Server-generated flow ID, echo it back on verify.")
    options: dict = Field(
        ...,
        description="PublicKeyCredential creation or request options as a JSON-safe dict.",
    )


class RegisterVerifyRequest(BaseModel):
    flow_id: str = Field(..., description="Flow ID returned by POST /passkey/register.")
    credential: RegistrationCredential = Field(
        ..., description="Browser PublicKeyCredential attestation response."
    )


class AuthenticateVerifyRequest(BaseModel):
    flow_id: str = Field(..., description="Flow ID returned by POST /passkey/authenticate.")
    credential: AuthenticationCredential = Field(
        ..., description="Browser PublicKeyCredential assertion response."
    )


class VerifyResponse(BaseModel):
    verified: bool = Field(..., description="True when the ceremony completed.")
    user_id: str = Field(..., description="User ID that starts with the u prefix.")


class ErrorDetail(BaseModel):
    code: str = Field(..., description="Stable error code for the failure.")
    message: str = Field(..., description="Human-readable error message.")


class ErrorResponse(BaseModel):
    """Standard error envelope for passkey routes."""

    detail: ErrorDetail | str = Field(..., description="Structured error or validation message.")
