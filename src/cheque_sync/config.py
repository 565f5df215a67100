"""
Configuration management (SSOT).

This module defines ALL configuration for cheque-sync.
All config keys are defined here; no other module should invent config keys.

Key invariants:
- The deployment scope namespaces the active-collection pointer, so two
  installs sharing one database never see each other's selection
- Interceptor defaults are safe for text APIs (bounded body size)
"""

import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml


class ConfigValidationError(Exception):
    """Raised when configuration validation fails."""

    pass


DEFAULT_SCOPE = "default"

# Environment variables consulted (in order) when resolving the scope
SCOPE_ENV_VARS = ("CHEQUE_SYNC_SCOPE", "PLUGIN_ID")


def resolve_scope(configured: str | None = None) -> str:
    """Resolve the deployment scope.

    Environment wins over the configured value; falls back to "default".
    """
    for var in SCOPE_ENV_VARS:
        value = os.environ.get(var, "").strip()
        if value:
            return value
    if configured and configured.strip():
        return configured.strip()
    return DEFAULT_SCOPE


@dataclass
class InterceptorSettings:
    """Response interceptor settings.

    content_types uses the filter vocabulary from
    cheque_sync.interceptor.content_types ("any", "json", "html", ...).
    """

    # Cap on captured body length (characters)
    max_body_chars: int = 1_000_000
    content_types: list[str] = field(default_factory=lambda: ["any"])
    # Extra regex patterns (ignored when "any" is present)
    extra_content_types: list[str] = field(default_factory=list)
    include_requests: bool = True
    include_httpx: bool = True
    include_httpx_async: bool = True
    # Skip bodies of unfollowed redirect responses
    skip_opaque: bool = True


@dataclass
class StorageConfig:
    """Collection repository settings."""

    db_path: Path = field(default_factory=lambda: Path("data/cheques.db"))
    # Deployment scope (None -> resolved from environment or "default")
    scope: str | None = None
    default_collection_name: str = "Receipts"

    def get_scope(self) -> str:
        """Get the effective deployment scope."""
        return resolve_scope(self.scope)


@dataclass
class SourceRoutes:
    """URL patterns (regex, searched) routing responses to extractors."""

    platformaofd_url_pattern: str = r"lk\.platformaofd\.ru/web/auth/cheques/search"
    costviser_url_pattern: str = r"costviser\.ru/checks"


@dataclass
class ReconciliationConfig:
    """Reconciliation settings."""

    # Payment-type labels summed as card / cash in per-source summaries
    card_labels: list[str] = field(
        default_factory=lambda: ["Оплата картой", "card", "electron"]
    )
    cash_labels: list[str] = field(default_factory=lambda: ["Наличными", "cash"])
    default_left_source: str = "PlatformaOFD"
    default_right_source: str = "Costviser"


@dataclass
class HttpConfig:
    """HTTP client settings for the capture command."""

    timeout_seconds: int = 30
    max_retries: int = 3
    backoff_factor: float = 0.5
    # Extra headers sent with every request (e.g. Cookie for authenticated pages)
    headers: dict[str, str] = field(default_factory=dict)


@dataclass
class Config:
    """Application configuration (SSOT).

    All configuration is centralized here. No other module should define
    configuration keys or defaults.
    """

    interceptor: InterceptorSettings = field(default_factory=InterceptorSettings)
    storage: StorageConfig = field(default_factory=StorageConfig)
    routes: SourceRoutes = field(default_factory=SourceRoutes)
    reconciliation: ReconciliationConfig = field(default_factory=ReconciliationConfig)
    http: HttpConfig = field(default_factory=HttpConfig)

    def validate(self) -> list[str]:
        """Validate configuration completeness and consistency.

        Returns:
            List of validation errors (empty if valid)
        """
        errors: list[str] = []

        if self.interceptor.max_body_chars < 0:
            errors.append("interceptor.max_body_chars must be >= 0")
        if not self.interceptor.content_types:
            errors.append("interceptor.content_types must not be empty")

        if not self.storage.default_collection_name.strip():
            errors.append("storage.default_collection_name is required")

        if not self.routes.platformaofd_url_pattern:
            errors.append("routes.platformaofd_url_pattern is required")
        if not self.routes.costviser_url_pattern:
            errors.append("routes.costviser_url_pattern is required")

        overlap = set(self.reconciliation.card_labels) & set(self.reconciliation.cash_labels)
        if overlap:
            errors.append(f"reconciliation labels used as both card and cash: {sorted(overlap)}")

        if self.http.timeout_seconds <= 0:
            errors.append("http.timeout_seconds must be > 0")

        return errors


def load_config(config_path: Path) -> Config:
    """
    Load configuration from YAML file.

    Environment variables can override config values:
    - CHEQUE_SYNC_DB (database path)
    - CHEQUE_SYNC_SCOPE / PLUGIN_ID (deployment scope)
    - CHEQUE_SYNC_MAX_BODY_CHARS (interceptor body cap)
    - CHEQUE_SYNC_HTTP_TIMEOUT (request timeout in seconds)
    """
    if config_path.exists():
        with open(config_path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    else:
        data = {}

    # Interceptor
    icpt_data = data.get("interceptor", {})
    max_body_chars = icpt_data.get("max_body_chars", 1_000_000)
    max_body_env = os.environ.get("CHEQUE_SYNC_MAX_BODY_CHARS", "")
    if max_body_env:
        try:
            max_body_chars = int(max_body_env)
        except ValueError:
            pass  # Keep configured value

    include_data = icpt_data.get("include", {})
    interceptor = InterceptorSettings(
        max_body_chars=max_body_chars,
        content_types=list(icpt_data.get("content_types", ["any"])),
        extra_content_types=list(icpt_data.get("extra_content_types", [])),
        include_requests=include_data.get("requests", True),
        include_httpx=include_data.get("httpx", True),
        include_httpx_async=include_data.get("httpx_async", True),
        skip_opaque=icpt_data.get("skip_opaque", True),
    )

    # Storage
    storage_data = data.get("storage", {})
    storage = StorageConfig(
        db_path=Path(
            os.environ.get("CHEQUE_SYNC_DB", storage_data.get("db_path", "data/cheques.db"))
        ),
        scope=storage_data.get("scope"),
        default_collection_name=storage_data.get("default_collection_name", "Receipts"),
    )

    # Routes
    routes_data = data.get("routes", {})
    defaults = SourceRoutes()
    routes = SourceRoutes(
        platformaofd_url_pattern=routes_data.get(
            "platformaofd_url_pattern", defaults.platformaofd_url_pattern
        ),
        costviser_url_pattern=routes_data.get(
            "costviser_url_pattern", defaults.costviser_url_pattern
        ),
    )

    # Reconciliation
    recon_data = data.get("reconciliation", {})
    recon_defaults = ReconciliationConfig()
    reconciliation = ReconciliationConfig(
        card_labels=list(recon_data.get("card_labels", recon_defaults.card_labels)),
        cash_labels=list(recon_data.get("cash_labels", recon_defaults.cash_labels)),
        default_left_source=recon_data.get(
            "default_left_source", recon_defaults.default_left_source
        ),
        default_right_source=recon_data.get(
            "default_right_source", recon_defaults.default_right_source
        ),
    )

    # HTTP
    http_data = data.get("http", {})
    http = HttpConfig(
        timeout_seconds=int(
            os.environ.get("CHEQUE_SYNC_HTTP_TIMEOUT", http_data.get("timeout_seconds", 30))
        ),
        max_retries=http_data.get("max_retries", 3),
        backoff_factor=http_data.get("backoff_factor", 0.5),
        headers=dict(http_data.get("headers") or {}),
    )

    return Config(
        interceptor=interceptor,
        storage=storage,
        routes=routes,
        reconciliation=reconciliation,
        http=http,
    )


def create_default_config(config_path: Path) -> None:
    """Create a default configuration file."""
    default_config = """# cheque-sync configuration
#
# Scope (SSOT): the active collection is remembered per scope, so several
# installs can share one database. CHEQUE_SYNC_SCOPE overrides storage.scope.

interceptor:
  max_body_chars: 1000000                  # Captured bodies are truncated here
  content_types: ["any"]                   # any | json | html | xml | form | event-stream | text/* | ...
  extra_content_types: []                  # Extra regex patterns (ignored with "any")
  include:
    requests: true                         # requests.Session.send
    httpx: true                            # httpx.Client.send
    httpx_async: true                      # httpx.AsyncClient.send
  skip_opaque: true                        # Skip bodies of unfollowed redirects

storage:
  db_path: "data/cheques.db"
  scope: null                              # Deployment scope (default: "default")
  default_collection_name: "Receipts"

routes:
  platformaofd_url_pattern: 'lk\\.platformaofd\\.ru/web/auth/cheques/search'
  costviser_url_pattern: 'costviser\\.ru/checks'

reconciliation:
  card_labels: ["Оплата картой", "card", "electron"]
  cash_labels: ["Наличными", "cash"]
  default_left_source: "PlatformaOFD"
  default_right_source: "Costviser"

http:
  timeout_seconds: 30
  max_retries: 3
  backoff_factor: 0.5
  headers: {}                              # e.g. {Cookie: "session=..."}
"""

    config_path.parent.mkdir(parents=True, exist_ok=True)
    with open(config_path, "w", encoding="utf-8") as f:
        f.write(default_config)
