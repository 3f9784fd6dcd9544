"""
Runtime settings, read from the environment or a .env file by pydantic-settings.
Defaults target the docker-compose stack (TiDB, Redis, Jaeger).
"""
from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # ── TiDB (MySQL-protocol compatible) ───────────────────────────────────
    tidb_host: str = "tidb"
    tidb_port: int = 4000
    tidb_user: str = "root"
    tidb_password: str = ""
    tidb_database: str = "social_feed"

    # Any SQLAlchemy async URL; takes precedence over the TiDB fields.
    database_url: Optional[str] = None

    db_pool_size: int = 20
    db_max_overflow: int = 10
    db_echo: bool = False

    @property
    def tidb_url(self) -> str:
        return (
            f"mysql+aiomysql://{self.tidb_user}:{self.tidb_password}"
            f"@{self.tidb_host}:{self.tidb_port}/{self.tidb_database}"
        )

    @property
    def db_url(self) -> str:
        return self.database_url or self.tidb_url

    # ── Store timeouts ─────────────────────────────────────────────────────
    query_timeout_seconds: float = 5.0     # per store operation
    batch_timeout_seconds: float = 180.0   # whole seeding batch
    batch_concurrency: int = 20            # concurrent inserts per batch

    # ── Redis ──────────────────────────────────────────────────────────────
    redis_enabled: bool = True
    redis_host: str = "redis"
    redis_port: int = 6379
    redis_password: str = ""
    redis_db: int = 0
    redis_users_ttl: int = 3600            # 1h
    redis_posts_ttl: int = 1800            # 30m
    redis_comments_ttl: int = 600          # 10m
    redis_refresh_timeout: float = 1.0     # budget for sliding-TTL refresh
    redis_op_timeout: float = 0.5          # per get/set/delete on the request path

    # ── Users ──────────────────────────────────────────────────────────────
    invitation_expiry_hours: int = 72
    bcrypt_rounds: int = 12

    # ── Authorization ──────────────────────────────────────────────────────
    post_update_role: str = "moderator"
    post_delete_role: str = "admin"

    # ── Observability ──────────────────────────────────────────────────────
    otel_exporter_otlp_endpoint: str = "http://jaeger:4317"
    service_name: str = "socialfeed-core"
    environment: str = "development"
    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
