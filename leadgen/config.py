from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Supabase
    supabase_url: str = ""
    supabase_service_key: str = ""

    # Provider A: fast OpenAI tier
    openai_api_key: str = ""
    openai_base_url: str = "https://api.openai.com/v1"
    openai_model: str = "gpt-5-mini"
    openai_timeout_seconds: float = 8.0

    # Provider B: Gemini through its OpenAI-compatible endpoint
    gemini_api_key: str = ""
    gemini_base_url: str = "https://generativelanguage.googleapis.com/v1beta/openai/"
    gemini_model: str = "gemini-2.0-flash"
    gemini_timeout_seconds: float = 15.0

    # Provider C: DeepSeek
    deepseek_api_key: str = ""
    deepseek_base_url: str = "https://api.deepseek.com/v1"
    deepseek_model: str = "deepseek-chat"
    deepseek_timeout_seconds: float = 20.0

    persona_max_tokens: int = 4000
    repair_timeout_seconds: float = 15.0
    research_max_tokens: int = 6000
    research_timeout_seconds: float = 45.0

    # Fallback chain
    provider_strategy: str = "sequential"  # sequential | racing
    max_parallel_calls: int = 5
    rate_limit_max_attempts: int = 3
    rate_limit_base_delay_ms: int = 300
    rate_limit_max_delay_ms: int = 4000
    persona_cache_enabled: bool = True
    persona_cache_ttl_hours: int = 168

    # Lookup tools
    serper_api_key: str = ""
    tavily_api_key: str = ""
    search_provider: str = "serper"  # serper | tavily
    search_fallback_to_tavily: bool = True
    tool_timeout_seconds: float = 20.0
    discovery_max_per_country: int = 8
    research_max_countries: int = 3
    research_max_sources: int = 8

    # Orchestration
    market_research_mode: str = "standard"  # standard | advanced
    task_timeout_seconds: float = 240.0
    job_max_attempts: int = 3

    # App
    cors_origins: str = "http://localhost:3000"
    app_log_level: str = "INFO"
    noisy_log_level: str = "WARNING"
    log_redact_pii: bool = True

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    @property
    def cors_origin_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",")]


settings = Settings()
