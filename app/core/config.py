"""Configuration management for Docwise API."""

from functools import lru_cache

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load environment variables from .env file (only if accessible)
try:
    load_dotenv()
except (PermissionError, OSError):
    # In sandboxed environments, .env might not be accessible
    # Environment variables should be set directly
    pass


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )

    # Supabase configuration (required)
    SUPABASE_URL: str = Field(..., description="Supabase project URL")
    SUPABASE_SERVICE_ROLE_KEY: str = Field(..., description="Supabase service role key")

    # Environment
    DOCWISE_ENV: str = Field(default="dev", description="Environment: dev, staging, prod")
    APP_BASE_URL: str = Field(
        default="http://localhost:5173", description="Public URL of the web app (redirect targets)"
    )
    CORS_ORIGINS: str = Field(default="*", description="Comma-separated allowed CORS origins")

    # Completion service
    COMPLETION_PROVIDER: str = Field(default="gemini", description="Completion provider: gemini, anthropic")
    GEMINI_API_KEY: str | None = Field(default=None, description="Gemini API key")
    GEMINI_MODEL: str = Field(default="gemini-1.5-flash", description="Gemini model for generation")
    ANTHROPIC_API_KEY: str | None = Field(default=None, description="Anthropic API key")
    ANTHROPIC_MODEL: str = Field(
        default="claude-3-5-haiku-20241022", description="Anthropic model for generation"
    )
    COMPLETION_TIMEOUT_SECONDS: float = Field(default=60.0, description="Completion request timeout")

    # Generation tuning
    GENERATE_TEMPERATURE: float = Field(default=0.4, description="Temperature for document generation")
    GENERATE_MAX_TOKENS: int = Field(default=2048, description="Max output tokens for generation")
    SUMMARIZE_TEMPERATURE: float = Field(default=0.3, description="Temperature for summaries")
    SUMMARIZE_MAX_TOKENS: int = Field(default=1024, description="Max output tokens for summaries")
    MAX_PROMPT_CHARS: int = Field(default=8_000, description="Max characters in a generation prompt")
    MAX_SUMMARY_INPUT_CHARS: int = Field(
        default=100_000, description="Max document characters sent for summarization"
    )

    # Stripe configuration
    STRIPE_SECRET_KEY: str | None = Field(default=None, description="Stripe secret key")
    STRIPE_WEBHOOK_SECRET: str | None = Field(default=None, description="Stripe webhook signing secret")
    STRIPE_PUBLISHABLE_KEY: str | None = Field(default=None, description="Public billing-widget key")
    STRIPE_PRO_PRICE_ID: str = Field(
        default="price_1RfLWW2cKms2tazUxzjrznUQ", description="Stripe price id of the Pro plan"
    )
    STRIPE_BUSINESS_PRICE_ID: str = Field(
        default="price_1RfLXW2cKms2tazUSxzTlOW1", description="Stripe price id of the Business plan"
    )

    # Google OAuth / export configuration
    GOOGLE_CLIENT_ID: str | None = Field(default=None, description="Google OAuth client id")
    GOOGLE_CLIENT_SECRET: str | None = Field(default=None, description="Google OAuth client secret")
    GOOGLE_REDIRECT_URI: str | None = Field(default=None, description="Google OAuth redirect URI")
    TOKEN_ENCRYPTION_KEY: str | None = Field(
        default=None, description="Secret used to encrypt stored OAuth tokens"
    )

    @property
    def cors_origins(self) -> list[str]:
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Returns:
        Settings instance

    Raises:
        ValidationError: If required environment variables are missing
    """
    return Settings()
