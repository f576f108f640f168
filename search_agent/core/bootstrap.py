"""Provider connections, adapters and orchestrator wiring at startup."""

from search_agent.core.config import Config, config
from search_agent.core.history import SearchHistoryRecorder
from search_agent.core.logger import logger
from search_agent.llm.openrouter_client import OpenRouterClient
from search_agent.providers.registry import ProviderRegistry
from search_agent.search.adapters import (
    DocsAdapter,
    FilesystemAdapter,
    FilesystemCodeAdapter,
    FirecrawlRenderAdapter,
    GitHubCodeAdapter,
    GitHubRepoAdapter,
    HeadlessRenderAdapter,
)
from search_agent.search.cache import ResultCache
from search_agent.search.enrichment import LLMResultEnricher
from search_agent.search.interface import SearchAdapter
from search_agent.search.orchestrator import SearchOrchestrator


def build_adapters(cfg: Config) -> list[SearchAdapter]:
    fs = cfg.providers.get("filesystem")
    allowed_paths = list(fs.limits.get("allowed_paths", [])) if fs else []
    return [
        FirecrawlRenderAdapter(),
        HeadlessRenderAdapter(
            cfg.flaresolverr_url,
            enabled=cfg.headless_fallback,
            retry_count=cfg.search_retry_count,
            retry_delay=cfg.search_retry_delay_ms / 1000,
        ),
        GitHubRepoAdapter(),
        GitHubCodeAdapter(),
        FilesystemAdapter(allowed_paths),
        FilesystemCodeAdapter(allowed_paths),
        DocsAdapter(),
    ]


async def setup_search(
    cfg: Config = config, *, connect: bool = True
) -> tuple[ProviderRegistry, SearchOrchestrator, list[object]]:
    """Connect enabled providers and build the orchestrator.

    Returns the registry, the orchestrator and a list of resources that need
    explicit shutdown (registry first).
    """
    registry = ProviderRegistry()
    closables: list[object] = [registry]
    if connect:
        connected = await registry.init(cfg.providers)
        if not connected:
            logger.warning("No providers connected; searches will return empty outcomes")

    enricher = None
    if cfg.enrichment_enabled and cfg.openrouter_api_key.strip():
        client = OpenRouterClient(cfg.openrouter_api_key, cfg.openrouter_models)
        closables.append(client)
        enricher = LLMResultEnricher(client)

    orchestrator = SearchOrchestrator(
        registry,
        build_adapters(cfg),
        cache=ResultCache(ttl=cfg.cache_ttl, max_entries=cfg.cache_max_entries),
        enricher=enricher,
        on_search_completed=SearchHistoryRecorder(cfg.logs_dir / "searches.jsonl"),
        default_max_results=cfg.search_max_results,
        default_timeout_ms=cfg.search_timeout_ms,
    )
    return registry, orchestrator, closables


async def shutdown(closables: list[object]) -> None:
    for item in closables:
        try:
            if isinstance(item, ProviderRegistry):
                await item.shutdown()
            elif hasattr(item, "close"):
                await item.close()
        except Exception as e:
            logger.warning(f"Error during shutdown of {type(item).__name__}: {e}")
