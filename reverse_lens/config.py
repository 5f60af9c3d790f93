# Copyright (c) 2026 Heureum AI. All rights reserved.

"""Reverse-lens service configuration."""
from pydantic import BaseModel
from pydantic_settings import BaseSettings, SettingsConfigDict


class ServerConfig(BaseModel):
    """Per-server configuration.

    Attributes:
        name (str): Unique identifier for the server.
        host (str): Hostname or IP address to bind to.
        port (int): Port number to listen on.
        transport (str): Transport protocol, either "sse" or "streamable-http".
    """

    name: str
    host: str = "0.0.0.0"
    port: int
    transport: str = "streamable-http"


class Settings(BaseSettings):
    """Reverse-lens settings.

    Attributes:
        SERVERS (dict[str, ServerConfig]): Map of server key to configuration.
        LOG_LEVEL (str): Root log level applied by the entry points.
        DFS_LOGIN (str): DataForSEO account login.
        DFS_PASSWORD (str): DataForSEO account password.
        DFS_ENDPOINT_POST (str): Endpoint creating search-by-image tasks.
        DFS_ENDPOINT_GET (str): Endpoint returning task results; the task id
            is appended as a path segment.
        DFS_LANGUAGE_CODE (str): Search language sent with each task.
        DFS_LOCATION_CODE (int): Search location sent with each task.
        DFS_TIMEOUT (float): Timeout in seconds for provider requests.
        DFS_MAX_RETRIES (int): Attempts per provider call.
        DFS_RETRY_BASE_DELAY (float): Base delay in seconds for exponential backoff.
        DFS_POLL_ATTEMPTS (int): Inline polls after a task is created.
        DFS_POLL_DELAY (float): Seconds to wait before each inline poll.
        SSRF_ALLOWED_HOSTS (list[str]): Exclusive host allow-list.
        SSRF_ENFORCE_ALLOWLIST (bool): Whether the allow-list is applied.
        SSRF_RESOLVE_DNS (bool): Whether hostnames are resolved and their
            addresses checked before a URL is admitted.
        RATE_LIMIT_ENABLED (bool): Whether per-client rate limiting is active.
        RATE_LIMIT_DAILY (int): Searches admitted per client per UTC day.
        RATE_LIMIT_BUCKET (str): Namespace prefix of rate-limit keys.
        TRUSTED_IP_HEADER (str): Edge-injected header carrying the client address.
        CACHE_ENABLED (bool): Whether result caching is enabled.
        CACHE_TTL (int): Result cache time-to-live in seconds.
        TASK_TTL (int): Task-to-cache-key mapping time-to-live in seconds.
        KV_MAX_SIZE (int): Maximum number of entries in the in-process store.
        DEDUPE_COOLDOWN (float): Seconds a finished search result is shared.
        DEDUPE_MAX_PENDING_AGE (float): Seconds before an in-flight search is stale.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
    )

    SERVERS: dict[str, ServerConfig] = {
        "image": ServerConfig(name="reverse-lens-image", port=3002),
    }

    LOG_LEVEL: str = "INFO"

    DFS_LOGIN: str = ""
    DFS_PASSWORD: str = ""
    DFS_ENDPOINT_POST: str = "https://api.dataforseo.com/v3/serp/google/search_by_image/task_post"
    DFS_ENDPOINT_GET: str = "https://api.dataforseo.com/v3/serp/google/search_by_image/task_get/advanced"
    DFS_LANGUAGE_CODE: str = "en"
    DFS_LOCATION_CODE: int = 2840
    DFS_TIMEOUT: float = 30.0
    DFS_MAX_RETRIES: int = 3
    DFS_RETRY_BASE_DELAY: float = 1.0
    DFS_POLL_ATTEMPTS: int = 3
    DFS_POLL_DELAY: float = 1.5

    SSRF_ALLOWED_HOSTS: list[str] = []
    SSRF_ENFORCE_ALLOWLIST: bool = False
    SSRF_RESOLVE_DNS: bool = False

    RATE_LIMIT_ENABLED: bool = True
    RATE_LIMIT_DAILY: int = 10
    RATE_LIMIT_BUCKET: str = "limit"
    TRUSTED_IP_HEADER: str = "cf-connecting-ip"

    CACHE_ENABLED: bool = True
    CACHE_TTL: int = 60 * 60 * 48
    TASK_TTL: int = 60 * 60
    KV_MAX_SIZE: int = 10000

    DEDUPE_COOLDOWN: float = 2.0
    DEDUPE_MAX_PENDING_AGE: float = 30.0


settings = Settings()
