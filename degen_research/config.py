from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # LLM provider (OpenAI-compatible)
    openai_api_key: str = ""
    openai_base_url: str = ""
    reasoning_model: str = "o4-mini-2025-04-16"
    fast_model: str = "gpt-4.1-mini-2025-04-14"
    fallback_model: str = "gpt-4.1-2025-04-14"

    # Tavily
    tavily_api_key: str = ""

    # Retry / backoff
    retry_max_attempts: int = 5
    retry_base_delay_ms: int = 1000

    # Source gathering
    search_nonessential_retries: int = 2
    search_batch_max_queries: int = 10
    search_query_delay_ms: int = 1000
    search_query_max_chars: int = 1000
    emergency_query_suffix: str = "cryptocurrency"

    # Ranking / tiering
    rerank_threshold: int = 20
    rerank_preview_limit: int = 120
    rerank_max_sources: int = 100
    premium_tier_size: int = 15
    standard_tier_size: int = 40
    max_tiered_sources: int = 100
    premium_max_chars: int = 8000

    # Compression
    standard_batch_size: int = 5
    compressed_batch_size: int = 10
    standard_summary_chars: int = 800
    compressed_summary_chars: int = 300
    summarization_batch_delay_ms: int = 500

    # LLM stages
    extraction_batch_size: int = 5
    validation_max_attempts: int = 2
    validation_chunk_threshold: int = 12000
    validation_chunk_size: int = 6000
    report_source_limit: int = 20

    # Cost gate
    daily_budget_usd: float = 10.0
    cost_unit_usd: float = 0.001
    estimated_operation_units: int = 50
    search_cost_per_query: float = 0.001
    llm_cost_per_1k_tokens: float = 0.002

    # App
    cors_origins: str = "*"
    host: str = "0.0.0.0"
    port: int = 3000
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
