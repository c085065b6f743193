from typing import Optional
from pydantic import Field, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import PostgresDsn


class PostgresSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
    )
    host: str = Field(alias="POSTGRES_HOST")
    port: int = Field(alias="POSTGRES_DB_PORT")
    db_name: str = Field(alias="POSTGRES_DB_NAME")
    user: str = Field(alias="POSTGRES_DB_USER")
    password: str = Field(alias="POSTGRES_DB_PASSWORD")

    @computed_field
    def connection_string(self) -> PostgresDsn:
        return PostgresDsn(
            f"postgresql+asyncpg://{self.user}:{self.password}@{self.host}:{self.port}/{self.db_name}"
        )


class AppSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
    )
    name: str = Field(default="deckgen", alias="APP_NAME")
    version: str = Field(default="v1", alias="API_VERSION")
    port: int = Field(default=9000, alias="APP_PORT")
    mode: str = Field(default="prod", alias="MODE")
    jwt_secret: str = Field(alias="JWT_SECRET")
    token_lifetime_seconds: int = Field(
        default=3600, alias="JWT_TOKEN_LIFETIME_SECONDS"
    )
    cors_origins: list[str] = Field(
        default_factory=lambda: ["http://localhost:3000"], alias="CORS_ORIGINS"
    )

    @computed_field
    def is_production(self) -> bool:
        return self.mode != "dev"


class GenerationSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
    )
    gemini_api_key: Optional[str] = Field(default=None, alias="GEMINI_API_KEY")
    model_name: str = Field(default="gemini-2.5-flash", alias="GEMINI_MODEL")
    temperature: float = Field(default=0.2, alias="GENERATION_TEMPERATURE")
    max_output_tokens: int = Field(default=8190, alias="GENERATION_MAX_OUTPUT_TOKENS")
    timeout_seconds: float = Field(default=120.0, alias="GENERATION_TIMEOUT_SECONDS")
    # Extra attempts after the first one, transient failures only
    max_retries: int = Field(default=2, alias="GENERATION_MAX_RETRIES")
    backoff_seconds: float = Field(default=1.5, alias="GENERATION_BACKOFF_SECONDS")
    # 0 disables thinking on flash models so the output budget goes to cards
    thinking_budget: Optional[int] = Field(default=0, alias="GENERATION_THINKING_BUDGET")
    default_card_count: int = Field(default=20, alias="DEFAULT_CARD_COUNT")
    max_card_count: int = Field(default=100, alias="MAX_CARD_COUNT")


class ExtractionSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
    )
    fetch_timeout_seconds: float = Field(default=20.0, alias="FETCH_TIMEOUT_SECONDS")
    fetch_max_bytes: int = Field(default=20 * 1024 * 1024, alias="FETCH_MAX_BYTES")
    fetch_max_redirects: int = Field(default=5, alias="FETCH_MAX_REDIRECTS")
    fetch_user_agent: str = Field(
        default="Mozilla/5.0 (compatible; deckgen/1.0)", alias="FETCH_USER_AGENT"
    )
    max_source_chars: int = Field(default=200_000, alias="MAX_SOURCE_CHARS")


class MeteringSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
    )
    deck_generation_cost: int = Field(default=10, alias="DECK_GENERATION_COST")
    active_status: str = Field(default="active", alias="SUBSCRIPTION_ACTIVE_STATUS")
    signup_token_grant: int = Field(default=30, alias="SIGNUP_TOKEN_GRANT")


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
    )

    app: AppSettings = Field(default_factory=lambda: AppSettings())
    postgres: PostgresSettings = Field(default_factory=lambda: PostgresSettings())
    generation: GenerationSettings = Field(default_factory=lambda: GenerationSettings())
    extraction: ExtractionSettings = Field(default_factory=lambda: ExtractionSettings())
    metering: MeteringSettings = Field(default_factory=lambda: MeteringSettings())


settings = Settings()
