from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: str = "sqlite:///./streambot.db"
    debug: bool = False
    log_level: str = "INFO"
    log_json: bool = True

    # Identity of the operator and the business
    owner_phone: str = ""
    owner_name: str = "Roberto"
    bot_name: str = "Assistente Virtual da Stream Studio"
    fanpage_url: str = "https://bot-whatsapp-450420.web.app/"
    whatsapp_support: str = "(13) 99606-9536"
    command_assume: str = "/assumir"
    command_release: str = "/liberar"

    # Manual attendance
    block_duration_minutes: int = 60
    owner_block_threshold: int = 2
    block_sweep_seconds: float = 300

    # Conversation memory
    history_max_messages: int = 10
    history_ttl_seconds: int = 3600
    conversation_cache_max: int = 10000
    conversation_timeout_days: int = 7

    # Inbound guards
    debounce_window_ms: int = 500
    debounce_max_age_seconds: int = 60
    debounce_sweep_seconds: float = 120
    processed_cache_max: int = 1000
    processed_cache_keep: int = 500

    # LLM (Groq, OpenAI-compatible API)
    groq_api_key: str = ""
    groq_api_url: str = "https://api.groq.com/openai/v1/chat/completions"
    groq_model: str = "llama-3.3-70b-versatile"
    groq_temperature: float = 0.7
    groq_max_tokens: int = 2000
    llm_timeout_seconds: float = 30.0
    llm_max_retries: int = 3

    # WhatsApp gateway
    whatsapp_api_url: str = "http://localhost:8080"
    whatsapp_api_token: str = ""
    whatsapp_instance_id: str = "streambot"

    # HTTP surface
    webhook_secret: str = ""
    admin_token: str = ""

    class Config:
        env_file = ".env"
        extra = "ignore"


settings = Settings()
