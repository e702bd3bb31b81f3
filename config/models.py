"""Pydantic configuration models for the UI smoke harness."""
from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Literal, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from exceptions import ConfigFileNotFoundError, ConfigurationError


# Load .env file if present
load_dotenv()

TRUTHY = ("1", "true")


def _env_flag(name: str, accepted: tuple[str, ...] = ("1",)) -> Optional[bool]:
    """Read a boolean flag; None when the variable is unset."""
    value = os.getenv(name)
    if value is None:
        return None
    return value.strip().lower() in accepted


def _apply_env(data: Any, mapping: dict[str, Any]) -> Any:
    """Fill fields from the environment where the caller did not set them."""
    if not isinstance(data, dict):
        return data
    for field_name, loader in mapping.items():
        if field_name in data and data[field_name] is not None:
            continue
        value = loader()
        if value is not None:
            data[field_name] = value
    return data


class ServerConfig(BaseModel):
    """Static file server and readiness polling."""

    model_config = ConfigDict(frozen=True)

    port: int = Field(
        default=4173,
        ge=1,
        le=65535,
        description="Port the static server binds to",
    )
    hosts: list[str] = Field(
        default_factory=lambda: ["127.0.0.1", "localhost"],
        min_length=1,
        description="Host aliases polled in order; the first reachable one is used",
    )
    bind: str = Field(
        default="127.0.0.1",
        description="Interface the static server binds to",
    )
    startup_timeout: float = Field(
        default=12.0,
        gt=0,
        le=300,
        description="Seconds to poll each host alias before giving up",
    )
    poll_interval: float = Field(
        default=0.2,
        ge=0,
        le=10,
        description="Seconds between readiness probes",
    )
    probe_timeout: float = Field(
        default=2.0,
        gt=0,
        le=60,
        description="Per-request timeout for a readiness probe",
    )
    stop_grace: float = Field(
        default=0.2,
        ge=0,
        le=30,
        description="Grace period after SIGTERM before the log is flushed",
    )

    @model_validator(mode="before")
    @classmethod
    def load_from_env(cls, data: Any) -> Any:
        """Load the port from UI_SMOKE_PORT if not explicitly set."""

        def port() -> Optional[str]:
            return os.getenv("UI_SMOKE_PORT") or None

        return _apply_env(data, {"port": port})


class BrowserConfig(BaseModel):
    """Browser launch and device emulation settings."""

    model_config = ConfigDict(frozen=True)

    headless: bool = Field(default=True, description="Run browsers headless")
    viewport_width: int = Field(
        default=390,
        ge=200,
        le=3840,
        description="Chromium mobile viewport width",
    )
    viewport_height: int = Field(
        default=844,
        ge=200,
        le=2160,
        description="Chromium mobile viewport height",
    )
    webkit_device: str = Field(
        default="iPhone 13",
        description="Playwright device descriptor used for WebKit",
    )
    chromium_args: list[str] = Field(
        default_factory=lambda: [
            "--no-sandbox",
            "--disable-setuid-sandbox",
            "--disable-dev-shm-usage",
        ],
        description="Hardening flags for constrained containers",
    )
    install_timeout: float = Field(
        default=600.0,
        gt=0,
        le=3600,
        description="Seconds allowed for the on-demand browser install",
    )


class NavigationConfig(BaseModel):
    """Navigation strategy and scripted interaction settings."""

    model_config = ConfigDict(frozen=True)

    allow_http: bool = Field(
        default=False,
        description="Try the HTTP strategy before FILE (UI_SMOKE_ALLOW_HTTP=1)",
    )
    timeout_ms: float = Field(
        default=60000,
        ge=1000,
        le=600000,
        description="Per-navigation timeout in milliseconds",
    )
    http_attempts: int = Field(default=3, ge=1, le=10)
    file_attempts: int = Field(default=2, ge=1, le=10)
    backoff_base: float = Field(
        default=0.3,
        ge=0,
        le=10,
        description="Base delay in seconds for exponential retry backoff",
    )
    click_selector: str = Field(
        default='button[data-route="add"]',
        description="Control clicked once during the app check",
    )
    settle_before_click_ms: int = Field(default=500, ge=0, le=60000)
    settle_after_click_ms: int = Field(default=700, ge=0, le=60000)

    @model_validator(mode="before")
    @classmethod
    def load_from_env(cls, data: Any) -> Any:
        """Load the HTTP opt-in from UI_SMOKE_ALLOW_HTTP if not explicitly set."""
        return _apply_env(data, {"allow_http": lambda: _env_flag("UI_SMOKE_ALLOW_HTTP")})


class PolicyConfig(BaseModel):
    """Environment flags that drive the conclusion policy."""

    model_config = ConfigDict(frozen=True)

    ci: bool = Field(default=False, description="Running under CI (CI=true)")
    strict: bool = Field(
        default=False,
        description="Infrastructure unavailability fails the run (PLAYWRIGHT_STRICT=1)",
    )
    skip_browser_download: bool = Field(
        default=False,
        description="Skip the pass entirely (PLAYWRIGHT_SKIP_BROWSER_DOWNLOAD=1|true)",
    )
    ci_warn_only: bool = Field(
        default=True,
        description="In CI without strict, a failed install only warns (UI_SMOKE_CI_WARN_ONLY)",
    )

    @model_validator(mode="before")
    @classmethod
    def load_from_env(cls, data: Any) -> Any:
        """Load policy flags from the environment if not explicitly set."""

        def ci_warn_only() -> Optional[bool]:
            flag = os.getenv("UI_SMOKE_CI_WARN_ONLY")
            if flag is None:
                return None
            return flag.strip().lower() not in {"0", "false", "no"}

        return _apply_env(
            data,
            {
                "ci": lambda: _env_flag("CI", TRUTHY),
                "strict": lambda: _env_flag("PLAYWRIGHT_STRICT"),
                "skip_browser_download": lambda: _env_flag("PLAYWRIGHT_SKIP_BROWSER_DOWNLOAD", TRUTHY),
                "ci_warn_only": ci_warn_only,
            },
        )


class ArtifactConfig(BaseModel):
    """Application location and artifact output."""

    model_config = ConfigDict(frozen=True)

    app_root: Path = Field(
        default_factory=Path.cwd,
        description="Directory served and loaded by the navigation strategies",
    )
    index_file: str = Field(default="index.html", description="Entry page, relative to app_root")
    artifacts_dir: Optional[Path] = Field(
        default=None,
        description="Artifact directory (default: <app_root>/artifacts/ui-smoke)",
    )
    report_format: Literal["json", "junit", "all"] = Field(
        default="json",
        description="Reports written next to the diagnostics document",
    )

    @field_validator("app_root", "artifacts_dir", mode="before")
    @classmethod
    def convert_to_path(cls, v: Any) -> Any:
        """Convert string to Path."""
        if isinstance(v, str):
            return Path(v)
        return v

    @model_validator(mode="before")
    @classmethod
    def load_from_env(cls, data: Any) -> Any:
        """Load app root and report format from the environment."""
        return _apply_env(
            data,
            {
                "app_root": lambda: os.getenv("UI_SMOKE_APP_ROOT") or None,
                "report_format": lambda: os.getenv("UI_SMOKE_REPORT_FORMAT") or None,
            },
        )

    @model_validator(mode="after")
    def resolve_paths(self) -> "ArtifactConfig":
        """Anchor the app root and default the artifact directory under it."""
        root = self.app_root.resolve()
        object.__setattr__(self, "app_root", root)
        if self.artifacts_dir is None:
            object.__setattr__(self, "artifacts_dir", root / "artifacts" / "ui-smoke")
        return self

    @property
    def index_path(self) -> Path:
        return self.app_root / self.index_file

    @property
    def screenshot_path(self) -> Path:
        return self.artifacts_dir / "screenshot.png"

    @property
    def sanity_path(self) -> Path:
        return self.artifacts_dir / "sanity.png"

    @property
    def trace_path(self) -> Path:
        return self.artifacts_dir / "trace.zip"

    @property
    def diagnostics_path(self) -> Path:
        return self.artifacts_dir / "diagnostics.json"

    @property
    def server_log_path(self) -> Path:
        return self.artifacts_dir / "server.log"


class SmokeConfig(BaseModel):
    """Root configuration model combining all config sections."""

    model_config = ConfigDict(frozen=True)

    server: ServerConfig = Field(default_factory=ServerConfig)
    browser: BrowserConfig = Field(default_factory=BrowserConfig)
    navigation: NavigationConfig = Field(default_factory=NavigationConfig)
    policy: PolicyConfig = Field(default_factory=PolicyConfig)
    artifacts: ArtifactConfig = Field(default_factory=ArtifactConfig)

    verbose: bool = Field(
        default=False,
        description="Enable verbose logging (UI_SMOKE_VERBOSE=1)",
    )

    @model_validator(mode="before")
    @classmethod
    def load_from_env(cls, data: Any) -> Any:
        return _apply_env(data, {"verbose": lambda: _env_flag("UI_SMOKE_VERBOSE")})

    @property
    def browser_targets(self) -> list[str]:
        """Browsers required on disk: one engine in CI, two otherwise."""
        return ["chromium"] if self.policy.ci else ["chromium", "webkit"]


def load_config(config_path: Optional[Path] = None) -> SmokeConfig:
    """
    Load configuration from an optional file, then the environment.

    Priority (highest to lowest):
    1. Config file values
    2. Environment variables
    3. Defaults

    The file is looked up from UI_SMOKE_CONFIG when no path is given; a
    missing default file is not an error, a missing explicit one is.
    """
    config_data: dict[str, Any] = {}

    explicit = config_path is not None or bool(os.getenv("UI_SMOKE_CONFIG"))
    if config_path is None:
        config_path = Path(os.getenv("UI_SMOKE_CONFIG") or "ui-smoke.json")

    if config_path.exists():
        with open(config_path, "r", encoding="utf-8") as f:
            if config_path.suffix in {".yaml", ".yml"}:
                import yaml
                config_data = yaml.safe_load(f) or {}
            else:
                config_data = json.load(f)
    elif explicit:
        raise ConfigFileNotFoundError(str(config_path))

    if not isinstance(config_data, dict):
        raise ConfigurationError(
            "Configuration file must contain a mapping",
            {"file_path": str(config_path)},
        )

    # Sections must exist so their env hooks run
    for section in ("server", "browser", "navigation", "policy", "artifacts"):
        config_data.setdefault(section, {})

    return SmokeConfig.model_validate(config_data)
