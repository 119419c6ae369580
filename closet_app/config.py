"""Configuration helpers for the StyleSphere closet app."""

from dataclasses import dataclass
from pathlib import Path
import os
from typing import Optional

DEFAULT_PROJECT_ID = "stylesphere-local"
DEFAULT_BLOB_FOLDER_ROOT = "stylesphere"
DEFAULT_CURRENCY = "INR"

_TRUTHY = {"1", "true", "yes", "on"}


@dataclass
class AppConfig:
    """Configuration values for the closet app.

    A document backend of ``none`` is not an error: it selects the local
    fallback mode where closet uploads are kept on the device only.
    """

    project_id: str = DEFAULT_PROJECT_ID
    environment: str | None = None
    document_backend: str = "none"
    document_db_path: Optional[str] = None
    blob_backend: str = "none"
    cloudinary_cloud_name: Optional[str] = None
    cloudinary_upload_preset: Optional[str] = None
    blob_folder_root: str = DEFAULT_BLOB_FOLDER_ROOT
    local_store_backend: str = "json"
    local_store_path: Optional[str] = None
    auth_token: Optional[str] = None
    allow_anonymous: bool = True
    checkout_currency: str = DEFAULT_CURRENCY

    @property
    def remote_configured(self) -> bool:
        """Both a document service and a blob host must be configured for remote writes."""

        return self.document_backend.lower() != "none" and self.blob_backend.lower() != "none"

    @classmethod
    def from_env(cls) -> "AppConfig":
        """Build a config from environment variables or an environment YAML file.

        Environment specific YAML lives in ``config/environments/<env>.yaml`` by
        default and is merged with environment variables so that credentials
        can be injected by the runtime environment.
        """

        env_name = os.getenv("APP_ENV")
        config_path = os.getenv("APP_CONFIG_PATH")
        config_dir = Path(os.getenv("APP_CONFIG_DIR", "config/environments"))
        yaml_config: dict = {}

        if config_path:
            path = Path(config_path)
        elif env_name:
            path = config_dir / f"{env_name}.yaml"
        else:
            path = None

        if path and path.exists():
            yaml_config = cls._load_yaml_config(path)

        def get_value(key: str, default: Optional[str] = None) -> Optional[str]:
            env_key = key.upper()
            return os.getenv(env_key, yaml_config.get(key, default))

        allow_anonymous = get_value("allow_anonymous", "true")

        return cls(
            project_id=str(get_value("project_id", DEFAULT_PROJECT_ID) or DEFAULT_PROJECT_ID),
            environment=env_name,
            document_backend=str(get_value("document_backend", "none") or "none"),
            document_db_path=get_value("document_db_path"),
            blob_backend=str(get_value("blob_backend", "none") or "none"),
            cloudinary_cloud_name=get_value("cloudinary_cloud_name"),
            cloudinary_upload_preset=get_value("cloudinary_upload_preset"),
            blob_folder_root=str(get_value("blob_folder_root", DEFAULT_BLOB_FOLDER_ROOT) or DEFAULT_BLOB_FOLDER_ROOT),
            local_store_backend=str(get_value("local_store_backend", "json") or "json"),
            local_store_path=get_value("local_store_path"),
            auth_token=get_value("auth_token"),
            allow_anonymous=str(allow_anonymous).strip().lower() in _TRUTHY,
            checkout_currency=str(get_value("checkout_currency", DEFAULT_CURRENCY) or DEFAULT_CURRENCY),
        )

    @staticmethod
    def _load_yaml_config(path: Path) -> dict:
        """Parse a minimal YAML/INI-style config without external dependencies."""

        config: dict[str, str] = {}
        for line in path.read_text().splitlines():
            stripped = line.strip()
            if not stripped or stripped.startswith("#"):
                continue
            if ":" not in stripped:
                continue
            key, raw_value = stripped.split(":", 1)
            value = raw_value.strip()
            if (value.startswith("\"") and value.endswith("\"")) or (
                value.startswith("'") and value.endswith("'")
            ):
                value = value[1:-1]
            config[key.strip()] = value
        return config
