# app/config.py
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Literal


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Application
    app_env: Literal["dev", "staging", "prod"] = "dev"
    log_level: str = "INFO"
    port: int = 3000

    # Security
    allowed_origins: list[str] = ["*"]

    # Storage backend
    # "firebase" - Firestore for users, Realtime Database for tokens/locations
    # "memory"   - in-process stores (local development only)
    store_backend: Literal["firebase", "memory"] = "firebase"
    memory_seed_path: str | None = None  # JSON with "users", "deviceTokens", "GPSLocation" for the memory backend

    # Firebase
    google_application_credentials_json: str | None = None  # Service account JSON (private_key may carry literal \n)
    firebase_database_url: str | None = None  # e.g. https://my-app-default-rtdb.firebaseio.com
    firebase_project_id: str | None = None  # Falls back to project_id from the service account

    # Recipient data layout
    users_collection: str = "users"
    device_tokens_path: str = "deviceTokens"  # Secondary token store: deviceTokens/{uid}
    gps_location_path: str = "GPSLocation"  # Location store: GPSLocation/{uid}

    # Audience selection
    circle_member_role: str = "Monitoring User"  # Role filter for circle notifications ("" disables)
    broadcast_role: str = "Monitoring User"  # Implicit audience for /notify-role

    # Push provider
    # "sdk"      - firebase_admin.messaging (default)
    # "http"     - FCM HTTP v1 REST API via aiohttp
    # "disabled" - dry-run, nothing leaves the process
    push_provider: Literal["sdk", "http", "disabled"] = "sdk"
    push_send_timeout_seconds: float = 10.0
    fcm_http_endpoint: str = "https://fcm.googleapis.com/v1/projects/{project_id}/messages:send"

    # Dispatch
    dispatch_max_concurrency: int = 20

    # Monitoring & Metrics
    enable_metrics: bool = True

    # Feature Flags
    enable_request_logging: bool = True

    @property
    def is_production(self) -> bool:
        return self.app_env == "prod"

    @property
    def is_staging(self) -> bool:
        return self.app_env == "staging"

    @property
    def firebase_enabled(self) -> bool:
        """Check if Firebase credentials are configured"""
        return bool(self.google_application_credentials_json)

    def validate_required_for_production(self) -> list[str]:
        """Validate that required settings exist for production"""
        if not self.is_production:
            return []

        missing = []

        required_fields = []
        if self.store_backend == "firebase" or self.push_provider in ("sdk", "http"):
            required_fields.append(
                ("google_application_credentials_json", self.google_application_credentials_json),
            )
        if self.store_backend == "firebase":
            required_fields.append(("firebase_database_url", self.firebase_database_url))

        for field_name, value in required_fields:
            if not value:
                missing.append(field_name)

        return missing


def warn_on_risky_config(s: "Settings") -> list[str]:
    warnings: list[str] = []

    if s.is_production and s.allowed_origins == ["*"]:
        warnings.append("prod: allowed_origins=['*'] (CORS is wide open).")

    if s.store_backend == "memory":
        warnings.append("store_backend=memory: recipients, tokens and locations are not persisted.")

    if s.push_provider == "disabled":
        warnings.append("push_provider=disabled: notifications are logged, never delivered.")

    if s.store_backend == "firebase" and not s.firebase_database_url:
        warnings.append(
            "store_backend=firebase but firebase_database_url is missing "
            "(token fallback and location lookups will fail)."
        )

    if s.push_provider in ("sdk", "http") and not s.firebase_enabled:
        warnings.append(f"push_provider={s.push_provider} but service account credentials are missing.")

    if s.dispatch_max_concurrency < 1:
        warnings.append("dispatch_max_concurrency < 1 is treated as 1.")

    return warnings


def validate_or_warn(s: "Settings") -> None:
    """
    In prod: enforce required settings (hard fail).
    In non-prod: warn only.
    """
    missing = s.validate_required_for_production()

    if missing:
        raise RuntimeError(f"Missing required settings for production: {', '.join(missing)}")

    for msg in warn_on_risky_config(s):
        print(f"[WARN][config] {msg}")

settings = Settings()
validate_or_warn(settings)
