"""
Configuration management using Pydantic BaseSettings.
All values can be overridden via environment variables or a .env file.
"""
from dataclasses import dataclass

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # ── Storage (TiDB / MySQL-protocol, any SQLAlchemy async URL works) ─────
    database_url: str = "mysql+aiomysql://root:@tidb:4000/social_feed"

    # ── Feed cache ─────────────────────────────────────────────────────────
    cache_backend: str = "memory"        # 'memory' | 'redis'
    redis_host: str = "redis"
    redis_port: int = 6379
    cache_sweep_interval: int = 60       # seconds between expired-entry sweeps

    cache_ttl_home: int = 300
    cache_ttl_following: int = 60        # following feeds churn faster
    cache_ttl_trending: int = 300
    cache_ttl_community: int = 300

    # ── Candidate windows (days) ───────────────────────────────────────────
    home_feed_days: int = 7
    following_feed_days: int = 30
    trending_feed_days: int = 2

    # ── Pagination ─────────────────────────────────────────────────────────
    default_page: int = 1
    default_limit: int = 20
    max_limit: int = 100

    # ── Ranking ────────────────────────────────────────────────────────────
    candidate_multiplier: int = 3        # superset fetched per requested page
    max_candidate_pool: int = 1000

    # ── Observability ──────────────────────────────────────────────────────
    tracing_enabled: bool = True
    otel_exporter_otlp_endpoint: str = "http://jaeger:4317"
    service_name: str = "feed-service"
    environment: str = "development"
    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


@dataclass(frozen=True)
class FeedConfig:
    """The subset of settings the feed assemblers read."""

    home_feed_days: int = 7
    following_feed_days: int = 30
    trending_feed_days: int = 2
    default_page: int = 1
    default_limit: int = 20
    max_limit: int = 100
    candidate_multiplier: int = 3
    max_candidate_pool: int = 1000
    ttl_home: int = 300
    ttl_following: int = 60
    ttl_trending: int = 300
    ttl_community: int = 300

    @classmethod
    def from_settings(cls, s: Settings) -> "FeedConfig":
        return cls(
            home_feed_days=s.home_feed_days,
            following_feed_days=s.following_feed_days,
            trending_feed_days=s.trending_feed_days,
            default_page=s.default_page,
            default_limit=s.default_limit,
            max_limit=s.max_limit,
            candidate_multiplier=s.candidate_multiplier,
            max_candidate_pool=s.max_candidate_pool,
            ttl_home=s.cache_ttl_home,
            ttl_following=s.cache_ttl_following,
            ttl_trending=s.cache_ttl_trending,
            ttl_community=s.cache_ttl_community,
        )


settings = Settings()
