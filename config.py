# config.py
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Default search queries for one fetch cycle
THREAT_QUERIES = [
    "breaking news conflict military",
    "geopolitical crisis tensions",
    "protest demonstration unrest",
    "natural disaster emergency",
    "terrorism attack security",
    "cyber attack breach",
    "diplomatic summit sanctions",
    "shipping attack piracy maritime",
    "kidnapping cartel violence crime",
    "infrastructure dam power grid failure",
    "food shortage commodity crisis",
    "missile strike airstrike bombing",
]

# Hosts whose pages are never events (matched on host or any parent domain)
BLOCKED_DOMAINS = {
    "wikipedia.org",
    "youtube.com",
    "facebook.com",
    "instagram.com",
    "tiktok.com",
    "twitter.com",
    "x.com",
    "pinterest.com",
    "reddit.com",
    "linkedin.com",
}

# Titles of index / landing / generic assessment pages
GENERIC_TITLE_PATTERNS = [
    r"^\s*(latest|breaking|world|top|today'?s)\s+(news|headlines|stories)\b",
    r"^\s*(topics?|tags?|category|categories|archives?)\s*[:|\-]",
    r"^\s*[\w']+(?:\s+[\w']+){0,2}\s+(news|headlines)\s*$",
    r"^\s*[\w\s'-]{0,40}\b(threat|risk|security)\s+assessments?\b[\s\d-]*$",
    r"^\s*(home|homepage|index)\s*$",
    r"^\s*untitled\s*$",
]

# Answer queries skip these sources
EXCLUDED_ANSWER_SOURCES = ["wikipedia.org"]

# Indicator weights for keyword scoring
WEIGHTS = {
    "strong": 3,
    "moderate": 2,
    "weak": 1,
}


class Settings(BaseSettings):
    """Runtime settings, read from the environment (or .env)."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore", populate_by_name=True)

    # "self-hosted" uses the API key; "valyu" requires a user access token per call
    app_mode: str = Field(default="self-hosted", alias="APP_MODE")

    valyu_api_key: str = Field(default="", alias="VALYU_API_KEY")
    valyu_base_url: str = Field(default="https://api.valyu.ai", alias="VALYU_BASE_URL")
    valyu_oauth_proxy_url: str = Field(
        default="https://platform.valyu.ai/api/oauth/proxy", alias="VALYU_OAUTH_PROXY_URL"
    )

    mapbox_token: str = Field(default="", alias="MAPBOX_TOKEN")

    openai_api_key: str = Field(default="", alias="OPENAI_API_KEY")
    openai_model: str = Field(default="gpt-4.1-nano", alias="OPENAI_MODEL")
    openai_base_url: str = Field(default="https://api.openai.com/v1", alias="OPENAI_BASE_URL")

    http_timeout_seconds: float = Field(default=30.0, alias="HTTP_TIMEOUT_SECONDS")

    search_max_results: int = Field(default=15, alias="SEARCH_MAX_RESULTS")
    max_queries: int = Field(default=8, alias="MAX_QUERIES")
    default_query_count: int = Field(default=6, alias="DEFAULT_QUERY_COUNT")
    max_concurrent_classifications: int = Field(default=8, alias="MAX_CONCURRENT_CLASSIFICATIONS")
    events_cache_limit: int = Field(default=1000, alias="EVENTS_CACHE_LIMIT")

    deepresearch_poll_seconds: float = Field(default=5.0, alias="DEEPRESEARCH_POLL_SECONDS")
    deepresearch_max_attempts: int = Field(default=120, alias="DEEPRESEARCH_MAX_ATTEMPTS")

    stream_buffer_size: int = Field(default=32, alias="STREAM_BUFFER_SIZE")
    gazetteer_fuzzy_cutoff: float = Field(default=90.0, alias="GAZETTEER_FUZZY_CUTOFF")

    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    @property
    def requires_user_token(self) -> bool:
        return self.app_mode == "valyu"
