"""
Configuration management using YAML files and dataclasses.

This module defines all configuration dataclasses and provides loading
from YAML files with defaults. Configuration sections:
- ProviderConfig: LLM completion provider settings
- FeedConfig: RSS/Atom feed fetching and item batching
- ExtractConfig: Event extraction prompt settings
- DedupConfig: Fuzzy duplicate thresholds
- NominationConfig: Stage-1 significance nomination
- CorroborationConfig: Stage-2 external signal checks
- StoreConfig: Timeline data directory and review output
- PublishConfig: git / GitHub side effects
- LoggingConfig: Logging behavior
- LangfuseConfig: Langfuse tracing settings
- AppConfig: Root configuration container
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
import os
from typing import Any

import yaml

from .errors import ConfigurationError


# Defaults for fields left unset, keyed by provider name.
PROVIDER_DEFAULTS: dict[str, dict[str, str]] = {
    "openrouter": {
        "model": "minimax/minimax-m2.5",
        "api_key_env": "OPENROUTER_API_KEY",
        "model_env": "OPENROUTER_MODEL",
        "base_url": "https://openrouter.ai/api/v1",
    },
    "gemini": {
        "model": "gemini-2.5-flash",
        "api_key_env": "GOOGLE_API_KEY",
        "model_env": "GEMINI_MODEL",
        "base_url": "https://generativelanguage.googleapis.com",
    },
}


@dataclass
class ProviderConfig:
    """Configuration for the LLM completion provider.

    Attributes:
        name: Provider name ("openrouter", "openai_compatible" or "gemini")
        model: Model identifier passed to the provider
        api_key_env: Environment variable holding the API key
        model_env: Environment variable that overrides `model` when set
        base_url: Base URL for the provider API
        api_key: Optional inline API key (overrides env var)
        site_name: Optional X-Title header for OpenRouter attribution
        site_url: Optional HTTP-Referer header for OpenRouter attribution
        timeout_seconds: Request timeout for a single completion
        trust_env: Whether to respect system proxy settings for API requests

    `model`, `api_key_env`, `model_env` and `base_url` default per provider
    (see PROVIDER_DEFAULTS); unknown names get the OpenRouter defaults.
    """

    name: str = "openrouter"
    model: str | None = None
    api_key_env: str | None = None
    model_env: str | None = None
    base_url: str | None = None
    api_key: str | None = None
    site_name: str | None = "rearview-mirror"
    site_url: str | None = None
    timeout_seconds: float = 60.0
    trust_env: bool = True

    def __post_init__(self) -> None:
        key = self.name.lower().strip()
        defaults = PROVIDER_DEFAULTS.get(key, PROVIDER_DEFAULTS["openrouter"])
        for attr, value in defaults.items():
            if getattr(self, attr) is None:
                setattr(self, attr, value)


@dataclass
class FeedConfig:
    """Configuration for newsletter feed fetching.

    Attributes:
        url: Feed URL (falls back to the `url_env` environment variable)
        url_env: Environment variable holding the feed URL
        timeout_seconds: HTTP request timeout
        user_agent: HTTP User-Agent header string
        short_item_chars: Items whose stripped text is shorter than this are batched
        max_batch_items: Maximum number of short items per extraction prompt
        max_chars: Maximum characters of item text sent to the LLM
    """

    url: str | None = None
    url_env: str = "RSS_FEED_URL"
    timeout_seconds: float = 30.0
    user_agent: str = "rearview-mirror/1.0 (AI Timeline Aggregator)"
    short_item_chars: int = 1500
    max_batch_items: int = 5
    max_chars: int = 60000


@dataclass
class ExtractConfig:
    """Configuration for LLM event extraction.

    Attributes:
        temperature: Sampling temperature (kept low for reproducibility)
        max_output_tokens: Maximum tokens for the extraction response
        name_match_threshold: rapidfuzz score (0-100) to snap names to known ones; 0 disables
    """

    temperature: float = 0.2
    max_output_tokens: int = 8192
    name_match_threshold: int = 95


@dataclass
class DedupConfig:
    """Configuration for fuzzy duplicate detection between candidates.

    Attributes:
        enabled: Whether to merge near-duplicate candidates across items
        strong_overlap: Title overlap that marks a duplicate regardless of organization
        weak_overlap: Title overlap that marks a duplicate when organizations are related
    """

    enabled: bool = True
    strong_overlap: float = 0.8
    weak_overlap: float = 0.5


@dataclass
class NominationConfig:
    """Configuration for Stage-1 LLM nomination.

    Attributes:
        batch_size: Number of chronologically adjacent events per prompt
        max_retries: Retries of a batch after a malformed response
        temperature: Sampling temperature
        max_output_tokens: Maximum tokens for a nomination response
    """

    batch_size: int = 40
    max_retries: int = 3
    temperature: float = 0.0
    max_output_tokens: int = 4096


@dataclass
class CorroborationConfig:
    """Configuration for Stage-2 external signal corroboration.

    Attributes:
        enabled: Whether candidates must be corroborated (False promotes all nominations)
        hackernews_enabled: Query Hacker News (community engagement)
        hackernews_threshold: Minimum top-story points
        wikipedia_enabled: Query Wikipedia pageviews (public interest)
        wikipedia_threshold: Minimum peak daily views (or index when a baseline is set)
        wikipedia_baseline_article: Optional reference article for a relative index
        window_days_before: Days before the event date included in the window
        window_days_after: Days after the event date included in the window
        delay_seconds: Pause after each candidate check
        timeout_seconds: Timeout for a single signal request
        user_agent: User-Agent header for signal APIs
    """

    enabled: bool = True
    hackernews_enabled: bool = True
    hackernews_threshold: int = 200
    wikipedia_enabled: bool = True
    wikipedia_threshold: float = 5000
    wikipedia_baseline_article: str | None = None
    window_days_before: int = 7
    window_days_after: int = 14
    delay_seconds: float = 0.2
    timeout_seconds: float = 20.0
    user_agent: str = "rearview-mirror/1.0 (AI timeline project)"


@dataclass
class StoreConfig:
    """Configuration for the timeline data store.

    Attributes:
        data_dir: Directory containing ai_model_timeline_*_en.json files
        logs_dir: Directory for run logs and evaluation audit logs
        review_dir: Directory for review documents when publishing is disabled
    """

    data_dir: str = "data"
    logs_dir: str = "data/logs"
    review_dir: str = "data/review"


@dataclass
class PublishConfig:
    """Configuration for git / GitHub side effects.

    Attributes:
        enabled: Whether to create issues, branches and PRs
        issue_label: Label applied to candidate issues
        branch_prefix: Prefix for approval branches
        run_branch_prefix: Prefix for branches of automated runs
        import_file: File holding the import reference to the data file
        command_timeout_seconds: Timeout for each git / gh invocation
    """

    enabled: bool = False
    issue_label: str = "ai-timeline-candidate"
    branch_prefix: str = "ai-timeline/issue-"
    run_branch_prefix: str = "ai-timeline/run-"
    import_file: str = "lib/timeline.ts"
    command_timeout_seconds: float = 30.0


@dataclass
class LoggingConfig:
    """Configuration for logging behavior.

    Attributes:
        level: Logging level ("DEBUG", "INFO", "WARNING", "ERROR")
        console: Whether to log to console
        file: Whether to log to file
        format: Log file format ("jsonl" or "plain")
        filename: Name of the main log file
        llm_log_enabled: Whether to enable separate LLM interaction logging
        llm_log_detail: LLM log detail level ("response_only", "prompt_response")
        llm_log_redaction: Redaction mode for LLM logs ("none", "redact_content", "redact_urls")
        llm_log_file: Name of the LLM log file
    """

    level: str = "INFO"
    console: bool = True
    file: bool = True
    format: str = "jsonl"
    filename: str = "run.jsonl"
    llm_log_enabled: bool = True
    llm_log_detail: str = "response_only"
    llm_log_redaction: str = "none"
    llm_log_file: str = "llm.jsonl"


@dataclass
class LangfuseConfig:
    """Configuration for Langfuse tracing.

    Attributes:
        enabled: Whether to enable Langfuse tracing
        public_key: Langfuse public key (optional)
        secret_key: Langfuse secret key (optional)
        host: Langfuse host URL (optional)
        environment: Langfuse environment label (optional)
        release: Langfuse release identifier (optional)
        max_text_chars: Maximum characters for prompt/response payloads
    """

    enabled: bool = False
    public_key: str | None = None
    secret_key: str | None = None
    host: str | None = None
    environment: str | None = None
    release: str | None = None
    max_text_chars: int = 20000


@dataclass
class AppConfig:
    """Root configuration container aggregating all config sections."""

    provider: ProviderConfig = field(default_factory=ProviderConfig)
    feed: FeedConfig = field(default_factory=FeedConfig)
    extract: ExtractConfig = field(default_factory=ExtractConfig)
    dedup: DedupConfig = field(default_factory=DedupConfig)
    nomination: NominationConfig = field(default_factory=NominationConfig)
    corroboration: CorroborationConfig = field(default_factory=CorroborationConfig)
    store: StoreConfig = field(default_factory=StoreConfig)
    publish: PublishConfig = field(default_factory=PublishConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    langfuse: LangfuseConfig = field(default_factory=LangfuseConfig)


_SECTIONS: dict[str, type] = {
    "provider": ProviderConfig,
    "feed": FeedConfig,
    "extract": ExtractConfig,
    "dedup": DedupConfig,
    "nomination": NominationConfig,
    "corroboration": CorroborationConfig,
    "store": StoreConfig,
    "publish": PublishConfig,
    "logging": LoggingConfig,
    "langfuse": LangfuseConfig,
}


def load_config(path: str | None) -> AppConfig:
    """Load configuration from a YAML file with defaults.

    A fresh AppConfig is returned on every call so CLI overrides never leak
    between runs.
    """
    if not path:
        return AppConfig()

    with open(path, "r", encoding="utf-8") as f:
        raw = yaml.safe_load(f) or {}

    return _merge_config(AppConfig(), raw)


def _merge_config(base: AppConfig, raw: dict[str, Any]) -> AppConfig:
    """Merge raw YAML config into base AppConfig.

    Unknown sections and unknown keys inside a section are ignored.
    """
    data = asdict(base)
    provider_raw = raw.get("provider")
    if isinstance(provider_raw, dict) and provider_raw.get("name"):
        # provider-specific defaults follow the configured name
        data["provider"] = asdict(ProviderConfig(name=str(provider_raw["name"])))
    for key, value in raw.items():
        if key not in data:
            continue
        if isinstance(value, dict) and isinstance(data[key], dict):
            known = {k: v for k, v in value.items() if k in data[key]}
            data[key].update(known)
    return _fromdict(data)


def _fromdict(data: dict[str, Any]) -> AppConfig:
    """Reconstruct AppConfig from nested dictionary."""
    return AppConfig(**{name: cls(**data[name]) for name, cls in _SECTIONS.items()})


def get_api_key(cfg: ProviderConfig) -> str | None:
    """Get API key from inline config or environment variable."""
    if cfg.api_key:
        return cfg.api_key
    return os.getenv(cfg.api_key_env)


def require_api_key(cfg: ProviderConfig) -> str:
    """Return the provider API key or fail before any network activity."""
    api_key = get_api_key(cfg)
    if not api_key:
        raise ConfigurationError(
            f"Missing API key for provider '{cfg.name}'. "
            f"Set {cfg.api_key_env} (environment or .env) or provider.api_key in config."
        )
    return api_key


def resolve_model(cfg: ProviderConfig) -> str:
    """Return the model name, honoring the model override env var."""
    if cfg.model_env:
        override = os.getenv(cfg.model_env)
        if override:
            return override
    return cfg.model


def require_feed_url(cfg: FeedConfig) -> str:
    """Return the feed URL from config or environment, or fail fast."""
    url = cfg.url or os.getenv(cfg.url_env)
    if not url:
        raise ConfigurationError(
            f"Missing feed URL. Set {cfg.url_env} or feed.url in config, or pass --file."
        )
    return url
