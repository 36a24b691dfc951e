"""Settings for capi-openapi.

Every field can be overridden with a ``CAPI_``-prefixed environment
variable, e.g. ``CAPI_WORKDIR=/tmp/capi`` or
``CAPI_SECURITY_EXEMPT_PATHS='["/v3/info"]'``.
"""

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_DOCS_URL = "https://v3-apidocs.cloudfoundry.org/version/{version}/index.html"


class Settings(BaseSettings):
    """Pipeline settings."""

    model_config = SettingsConfigDict(env_prefix="CAPI_")

    workdir: Path = Field(default=Path("."))
    docs_url_template: str = DEFAULT_DOCS_URL
    server_url: str = "https://api.example.org"
    security_exempt_paths: list[str] = Field(default_factory=lambda: ["/v3/info"])

    # External tools
    curl: str = "curl"
    openapi_generator: str = "openapi-generator-cli"
    oapi_codegen: str = "oapi-codegen"
    spectral: str = "spectral"
    spectral_ruleset: Path | None = None

    log_level: str = "WARNING"
    log_json: bool = False

    def version_dir(self, version: str) -> Path:
        return self.workdir / "capi" / version

    def html_path(self, version: str) -> Path:
        return self.version_dir(version) / "index.html"

    def sdk_dir(self, version: str, language: str) -> Path:
        return self.workdir / "sdk" / version / language


def get_settings(**overrides) -> Settings:
    """Build settings from the environment, applying non-None overrides."""
    return Settings(**{k: v for k, v in overrides.items() if v is not None})
