"""Configuration from environment variables (.env) and an optional providers file."""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from search_agent.providers.config import ProviderConfig, ReconnectPolicy

load_dotenv()

SUPPORTED_SEARCH_TYPES = ("web", "github", "files", "docs", "code", "all")


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_list(name: str, default: str = "") -> list[str]:
    return [a.strip() for a in os.getenv(name, default).split(",") if a.strip()]


def _provider_from_env(
    name: str,
    *,
    package: str,
    enabled: bool,
    credentials: dict[str, str],
    limits: dict[str, Any],
    extra_args: list[str] | None = None,
) -> ProviderConfig:
    """MCP_<NAME>_URL switches to streamable HTTP; otherwise spawn over stdio via npx."""
    prefix = f"MCP_{name.upper()}"
    reconnect = ReconnectPolicy(
        max_attempts=int(os.getenv("MCP_RECONNECT_MAX_ATTEMPTS", "3")),
        delay=float(os.getenv("MCP_RECONNECT_DELAY", "5.0")),
    )
    creds = {k: v for k, v in credentials.items() if v}
    enabled = _env_bool(f"{prefix}_ENABLED", enabled)
    url = os.getenv(f"{prefix}_URL", "").strip()
    if url:
        # remote servers take the token as a bearer header, not an env var
        token = next(iter(creds.values()), "")
        return ProviderConfig(
            name=name,
            transport="http",
            url=url,
            headers={"Authorization": f"Bearer {token}"} if token else None,
            enabled=enabled,
            limits=limits,
            reconnect=reconnect,
        )
    command = os.getenv(f"{prefix}_COMMAND", "").strip() or "npx"
    args = _env_list(f"{prefix}_ARGS") or ["-y", package, *(extra_args or [])]
    return ProviderConfig(
        name=name,
        transport="stdio",
        command=command,
        args=args,
        enabled=enabled,
        credentials=creds,
        limits=limits,
        reconnect=reconnect,
    )


def _default_providers() -> dict[str, ProviderConfig]:
    firecrawl_key = os.getenv("FIRECRAWL_API_KEY", "")
    github_token = os.getenv("GITHUB_TOKEN", "")
    allowed_paths = _env_list("FILESYSTEM_ALLOWED_PATHS", "./data,./public,./src")
    return {
        "firecrawl": _provider_from_env(
            "firecrawl",
            package="firecrawl-mcp",
            enabled=bool(firecrawl_key),
            credentials={"FIRECRAWL_API_KEY": firecrawl_key},
            limits={"max_pages": 10, "timeout_ms": 30000},
        ),
        "github": _provider_from_env(
            "github",
            package="@modelcontextprotocol/server-github",
            enabled=bool(github_token),
            credentials={"GITHUB_PERSONAL_ACCESS_TOKEN": github_token},
            limits={"max_results": 50},
        ),
        "context7": _provider_from_env(
            "context7",
            package="@upstash/context7-mcp",
            enabled=True,
            credentials={},
            limits={"cache_size": 1000},
        ),
        "filesystem": _provider_from_env(
            "filesystem",
            package="@modelcontextprotocol/server-filesystem",
            enabled=True,
            credentials={},
            limits={"allowed_paths": allowed_paths, "max_file_size": 50 * 1024 * 1024},
            extra_args=allowed_paths,
        ),
    }


def load_providers_file(path: Path) -> dict[str, ProviderConfig]:
    """Read a YAML providers file: {providers: {name: {...ProviderConfig fields}}}."""
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    entries = data.get("providers", data) if isinstance(data, dict) else {}
    if not isinstance(entries, dict):
        raise ValueError(f"{path}: 'providers' must be a mapping")
    return {name: ProviderConfig.from_dict(name, entry or {}) for name, entry in entries.items()}


@dataclass
class Config:
    project_root: Path
    logs_dir: Path
    log_level: str
    cache_ttl: float  # seconds
    cache_max_entries: int
    search_max_results: int
    search_timeout_ms: int
    search_retry_count: int  # headless render fetch only; provider calls are never retried
    search_retry_delay_ms: int
    flaresolverr_url: str
    headless_fallback: bool
    openrouter_api_key: str
    openrouter_models: list[str]  # Model IDs to try in order (fallback on 5xx/429)
    enrichment_enabled: bool
    providers_file: Path | None
    providers: dict[str, ProviderConfig]

    @classmethod
    def load(cls) -> "Config":
        project_root = Path(__file__).parent.parent.parent
        providers = _default_providers()
        providers_file_env = os.getenv("PROVIDERS_FILE", "").strip()
        providers_file = Path(providers_file_env) if providers_file_env else None
        if providers_file is not None and providers_file.exists():
            providers.update(load_providers_file(providers_file))
        return cls(
            project_root=project_root,
            logs_dir=Path(os.getenv("LOGS_DIR", str(project_root / "logs"))),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            cache_ttl=float(os.getenv("CACHE_TTL", "3600")),
            cache_max_entries=int(os.getenv("CACHE_MAX_ENTRIES", "500")),
            search_max_results=int(os.getenv("SEARCH_MAX_RESULTS", "100")),
            search_timeout_ms=int(os.getenv("SEARCH_TIMEOUT_MS", "30000")),
            search_retry_count=int(os.getenv("SEARCH_RETRY_COUNT", "3")),
            search_retry_delay_ms=int(os.getenv("SEARCH_RETRY_DELAY_MS", "1000")),
            flaresolverr_url=os.getenv("FLARESOLVERR_URL", "http://localhost:8191"),
            headless_fallback=_env_bool("HEADLESS_FALLBACK", True),
            openrouter_api_key=os.getenv("OPENROUTER_API_KEY", ""),
            openrouter_models=_env_list("OPENROUTER_MODELS", "openrouter/free"),
            enrichment_enabled=_env_bool(
                "ENRICHMENT_ENABLED", bool(os.getenv("OPENROUTER_API_KEY", "").strip())
            ),
            providers_file=providers_file,
            providers=providers,
        )

    def enabled_providers(self) -> dict[str, ProviderConfig]:
        return {name: cfg for name, cfg in self.providers.items() if cfg.enabled}

    def validate(self) -> list[str]:
        errors = []
        if self.providers_file is not None and not self.providers_file.exists():
            errors.append(f"Providers file not found: {self.providers_file}")
        if self.search_timeout_ms <= 0:
            errors.append("SEARCH_TIMEOUT_MS must be positive")
        if self.search_max_results <= 0:
            errors.append("SEARCH_MAX_RESULTS must be positive")
        if self.cache_ttl < 0:
            errors.append("CACHE_TTL must be >= 0")
        if self.enrichment_enabled and not self.openrouter_api_key.strip():
            errors.append("ENRICHMENT_ENABLED is set but OPENROUTER_API_KEY is empty")
        return errors


config = Config.load()
