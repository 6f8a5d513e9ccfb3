from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # OpenRouter (completion service)
    openrouter_api_key: str = ""
    openrouter_base_url: str = "https://openrouter.ai/api/v1"
    quick_model: str = "google/gemini-2.0-flash-lite-001"
    high_model: str = "google/gemini-2.0-flash-lite-001"
    quick_max_tokens: int = 4096
    high_max_tokens: int = 8192
    llm_temperature: float = 0.7
    app_referer: str = "https://ithbat.app"
    app_title: str = "Ithbat - Islamic Knowledge Research"

    # Search service
    search_provider: str = "perplexity"  # perplexity | openrouter
    perplexity_api_key: str = ""
    perplexity_base_url: str = "https://api.perplexity.ai"
    perplexity_model: str = "sonar"
    openrouter_search_model: str = "perplexity/sonar"
    search_fallback_to_openrouter: bool = True
    search_max_tokens: int = 8192

    # Crawl
    crawl_max_urls: int = 8
    crawl_batch_size: int = 3
    crawl_timeout_seconds: float = 5.0
    crawl_max_html_chars: int = 2_000_000
    crawl_user_agent: str = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    )

    # Extraction
    site_configs_dir: str = ""  # empty = bundled ithbat/traverser configs
    evidence_max_page_chars: int = 15000

    # Response streaming
    response_chunk_size: int = 50
    response_chunk_delay_ms: int = 10

    # App
    cors_origins: str = "http://localhost:3000"
    app_log_level: str = "INFO"
    noisy_log_level: str = "WARNING"
    log_dir: str = "logs"

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    @property
    def cors_origin_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",")]


settings = Settings()
