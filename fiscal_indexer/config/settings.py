from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    app_env: str = "dev"
    log_level: str = "INFO"

    docuware_uri: str = "https://localhost"
    docuware_username: str = ""
    docuware_password: str = ""
    docuware_organization: str = ""
    docuware_cabinet_id: str = ""
    docuware_timeout_seconds: int = 30

    ocr_engine: str = "tesseract"
    ocr_language: str = "spa+eng"
    ocr_dpi: int = 300
    tesseract_cmd: str = ""

    bulk_max_document_limit: int = Field(default=1000, ge=1, le=1000)
    bulk_empty_field_values: list[str] = ["--", "", "N/A", "NULL", "null", "undefined"]
    bulk_treat_placeholders_as_empty: bool = True
    bulk_log_placeholder_replacements: bool = True
    bulk_document_count: int = 10
    bulk_dry_run: bool = True
    bulk_only_update_empty_fields: bool = True

    analyze_document_id: int | None = None

    audit_enabled: bool = True
    audit_directory: str = "./logs"
    audit_max_file_size_mb: int = 10
    audit_retention_days: int = 30
