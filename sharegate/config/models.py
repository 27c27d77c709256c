from __future__ import annotations

from pydantic import BaseModel


class Settings(BaseModel):
    app_name: str = "Sharegate (FastAPI)"

    # JWT Configuration
    jwt_secret: str = "dev-secret"
    jwt_issuer: str = "sharegate"
    jwt_exp_hours: int = 24

    # Database Configuration
    # Use a simple SQLite file by default; override via `database_url` in config or env
    database_url: str = "sqlite:///./sharegate.db"

    # Blob storage: "local" (filesystem under blob_base_path) or "s3"
    blob_backend: str = "local"
    blob_base_path: str = "./uploads"

    # S3 / MinIO Configuration
    s3_endpoint_url: str = "http://localhost:9000"
    s3_region: str = "us-east-1"
    s3_access_key: str = "minioadmin"
    s3_secret_key: str = "minioadmin"
    s3_bucket: str | None = None
    s3_use_path_style: bool = True

    # Public base URL used in emailed share links
    app_url: str = "http://localhost:5000"

    # Email Configuration
    smtp_host: str = ""
    smtp_port: int = 587
    smtp_username: str = ""
    smtp_password: str = ""
    smtp_from_email: str = ""
    smtp_from_name: str = "Sharegate"
    smtp_use_tls: bool = True

    # Share codes and link tokens
    share_code_length: int = 8
    share_token_bytes: int = 32
    max_identifier_length: int = 256

    # bcrypt cost for share passwords
    share_password_rounds: int = 12

    log_level: str = "INFO"
