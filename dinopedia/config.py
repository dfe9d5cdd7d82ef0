from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # OpenAI-compatible chat completions
    openai_api_key: str = ""
    openai_model: str = "gpt-4o-mini"
    openai_base_url: str = ""  # optional gateway, e.g. https://openrouter.ai/api/v1

    # Tavily
    tavily_api_key: str = ""
    tavily_max_results: int = 2

    # Research agent
    ai_agent_backend_url: str = "http://localhost:3000"
    ai_agent_max_retries: int = 3
    ai_agent_retry_delay_ms: int = 2000
    ai_agent_timeout: int = 60000  # milliseconds
    ai_agent_log_level: str = "info"  # debug | info | warn | error
    ai_agent_include_fossils: bool = False

    # Supabase (service role key bypasses RLS)
    supabase_url: str = ""
    supabase_service_key: str = ""

    # App
    cors_origins: str = "http://localhost:5173,http://localhost:3000"
    app_log_level: str = "INFO"
    noisy_log_level: str = "WARNING"

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    @property
    def cors_origin_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]


settings = Settings()
