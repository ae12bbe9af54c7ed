from functools import lru_cache
import json

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DOCUMENT_AI_CLIENTS = ("google", "mock")


def _parse_list_value(value: str) -> list[str]:
    if not value:
        return []
    if isinstance(value, str):
        raw = value.strip()
        if raw == "":
            return []
        try:
            parsed = json.loads(raw)
            if isinstance(parsed, list):
                return [str(item).strip() for item in parsed if str(item).strip()]
        except ValueError:
            pass
        return [item.strip() for item in raw.split(",") if item.strip()]
    if isinstance(value, list):
        return [str(item).strip() for item in value if str(item).strip()]
    return []


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        extra="ignore",
        validate_by_name=True,
        populate_by_name=True,
    )
    environment: str = Field(
        default="development",
        validation_alias=AliasChoices("ENVIRONMENT", "APP_ENV"),
    )
    database_url: str = ""

    docs_enabled: bool = Field(default=True)
    openapi_enabled: bool = Field(default=True)
    expose_error_details: bool = False

    jwt_secret: str = Field(
        default="",
        validation_alias=AliasChoices("JWT_SECRET", "SUPABASE_JWT_SECRET"),
    )
    jwt_audience: str = Field(
        default="authenticated",
        validation_alias=AliasChoices("JWT_AUDIENCE", "SUPABASE_JWT_AUDIENCE"),
    )

    pii_redaction_enabled: bool = Field(
        default=True,
        validation_alias=AliasChoices("PII_REDACTION_ENABLED"),
    )
    pii_redaction_fields: list[str] = Field(
        default_factory=lambda: [
            "phone",
            "email",
            "address",
            "card_number",
            "tax_id",
        ],
        validation_alias=AliasChoices("PII_REDACTION_FIELDS"),
    )

    enable_receipt_processing: bool = True

    # Document AI (expense parser). The access token is acquired outside this
    # service and supplied as-is.
    document_ai_client: str = "mock"
    document_ai_project_id: str = ""
    document_ai_location: str = "us"
    document_ai_processor_id: str = ""
    document_ai_access_token: str = ""
    document_ai_endpoint: str = ""
    document_ai_timeout_seconds: float = 30.0

    receipt_max_bytes: int = 10 * 1024 * 1024
    receipt_allowed_extensions_raw: str = Field(
        default=".pdf,.png,.jpg,.jpeg",
        validation_alias=AliasChoices("RECEIPT_ALLOWED_EXTENSIONS"),
    )
    receipt_infer_quantity: bool = False

    cors_allow_origins: list[str] = Field(default_factory=list)
    cors_allow_methods: list[str] = Field(default_factory=lambda: [
        "GET",
        "POST",
        "PATCH",
        "DELETE",
        "OPTIONS",
    ])
    cors_allow_headers: list[str] = Field(default_factory=lambda: [
        "Authorization",
        "Content-Type",
        "Accept",
    ])

    @field_validator(
        "cors_allow_origins",
        "cors_allow_methods",
        "cors_allow_headers",
        "pii_redaction_fields",
        mode="before",
    )
    @classmethod
    def _split_csv(cls, value):
        if value is None:
            return []
        if isinstance(value, str):
            if value.strip() == "":
                return []
            return [item.strip() for item in value.split(",") if item.strip()]
        return value

    @property
    def receipt_allowed_extensions(self) -> list[str]:
        extensions = []
        for item in _parse_list_value(self.receipt_allowed_extensions_raw):
            ext = item.lower()
            if not ext.startswith("."):
                ext = f".{ext}"
            extensions.append(ext)
        return extensions

    @property
    def is_production(self) -> bool:
        return self.environment.strip().lower() in {"production", "prod"}

    def validate_required_config(self) -> list[str]:
        """Return human-readable problems with the current configuration."""
        errors: list[str] = []
        if not self.database_url:
            errors.append("DATABASE_URL is not set")
        if not self.jwt_secret:
            errors.append("JWT_SECRET is not set")
        client_name = (self.document_ai_client or "mock").strip().lower()
        if client_name not in DOCUMENT_AI_CLIENTS:
            errors.append(f"DOCUMENT_AI_CLIENT {self.document_ai_client!r} is not one of: google, mock")
        elif client_name == "mock" and self.is_production:
            errors.append("DOCUMENT_AI_CLIENT=mock is not allowed in production")
        if client_name == "google":
            if not self.document_ai_project_id:
                errors.append("DOCUMENT_AI_PROJECT_ID is required for the google client")
            if not self.document_ai_processor_id:
                errors.append("DOCUMENT_AI_PROCESSOR_ID is required for the google client")
            if not self.document_ai_access_token:
                errors.append("DOCUMENT_AI_ACCESS_TOKEN is required for the google client")
        if self.receipt_max_bytes <= 0:
            errors.append("RECEIPT_MAX_BYTES must be positive")
        return errors


@lru_cache
def get_settings() -> Settings:
    return Settings()
