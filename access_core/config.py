import ipaddress
import json
import os
import threading
from urllib.parse import urlparse

from dotenv import load_dotenv
from pydantic import BaseModel, Field


load_dotenv()

AUDIT_SINKS = frozenset({"memory", "database", "redis"})


def _parse_list(name: str, raw: str) -> list[str]:
    """Parse a CSV or JSON-array environment value into a list of strings."""
    if raw.startswith("["):
        try:
            parsed_list = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise ValueError(f"{name} JSON is malformed: {exc}") from exc
        if not isinstance(parsed_list, list):
            raise ValueError(f"{name} JSON must be an array")
        return [item.strip() for item in parsed_list if isinstance(item, str) and item.strip()]
    return [item.strip() for item in raw.split(",") if item.strip()]


def _parse_bool(name: str, raw: str) -> bool:
    value = raw.strip().lower()
    if value in {"1", "true", "yes", "on"}:
        return True
    if value in {"0", "false", "no", "off"}:
        return False
    raise ValueError(f"{name} must be a boolean value")


def _parse_positive_int(name: str, raw: str) -> int:
    try:
        value = int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer") from exc
    if value <= 0:
        raise ValueError(f"{name} must be greater than 0")
    return value


def _parse_non_negative_int(name: str, raw: str) -> int:
    try:
        value = int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer") from exc
    if value < 0:
        raise ValueError(f"{name} must be greater than or equal to 0")
    return value


class Settings(BaseModel):
    app_name: str = Field(default="Legal Access Core")
    debug: bool = Field(default=False)
    log_level: str = Field(default="INFO")
    access_definitions_path: str | None = Field(default=None)
    allowed_ips: list[str] = Field(default_factory=list)
    audit_sink: str = Field(default="memory")
    audit_queue_size: int = Field(default=10_000)
    audit_sink_timeout_seconds: float = Field(default=2.0)
    database_url: str = Field(default="")
    db_pool_size: int = Field(default=5)
    db_max_overflow: int = Field(default=10)
    db_pool_recycle: int = Field(default=1800)
    db_pool_pre_ping: bool = Field(default=True)
    redis_url: str = Field(default="redis://localhost:6379/0")
    audit_stream_key: str = Field(default="access:audit")
    audit_stream_maxlen: int = Field(default=100_000)

    @classmethod
    def from_env(cls) -> "Settings":
        defaults = cls.model_fields

        allowed_ips = _parse_list("ALLOWED_IPS", os.getenv("ALLOWED_IPS", "").strip())
        for entry in allowed_ips:
            try:
                ipaddress.ip_network(entry, strict=False)
            except ValueError as exc:
                raise ValueError(
                    f"ALLOWED_IPS contains an invalid address or network: {entry}"
                ) from exc

        audit_sink = os.getenv("AUDIT_SINK", defaults["audit_sink"].default).strip().lower()
        if audit_sink not in AUDIT_SINKS:
            raise ValueError(
                f"AUDIT_SINK must be one of: {', '.join(sorted(AUDIT_SINKS))}"
            )

        audit_queue_size = _parse_positive_int(
            "AUDIT_QUEUE_SIZE",
            os.getenv("AUDIT_QUEUE_SIZE", str(defaults["audit_queue_size"].default)),
        )

        raw_timeout = os.getenv(
            "AUDIT_SINK_TIMEOUT_SECONDS", str(defaults["audit_sink_timeout_seconds"].default)
        )
        try:
            audit_sink_timeout_seconds = float(raw_timeout)
        except ValueError as exc:
            raise ValueError("AUDIT_SINK_TIMEOUT_SECONDS must be a number") from exc
        if audit_sink_timeout_seconds <= 0:
            raise ValueError("AUDIT_SINK_TIMEOUT_SECONDS must be greater than 0")

        database_url = os.getenv("DATABASE_URL", "").strip()
        if audit_sink == "database":
            if not database_url:
                raise ValueError("DATABASE_URL environment variable must be set for AUDIT_SINK=database")
            parsed_db = urlparse(database_url)
            if parsed_db.scheme != "postgresql+asyncpg":
                raise ValueError("DATABASE_URL must start with 'postgresql+asyncpg://'")
            if not parsed_db.hostname:
                raise ValueError("DATABASE_URL must include hostname")

        db_pool_size = _parse_positive_int(
            "DB_POOL_SIZE", os.getenv("DB_POOL_SIZE", str(defaults["db_pool_size"].default))
        )
        db_max_overflow = _parse_non_negative_int(
            "DB_MAX_OVERFLOW",
            os.getenv("DB_MAX_OVERFLOW", str(defaults["db_max_overflow"].default)),
        )
        db_pool_recycle = _parse_positive_int(
            "DB_POOL_RECYCLE", os.getenv("DB_POOL_RECYCLE", str(defaults["db_pool_recycle"].default))
        )
        db_pool_pre_ping = _parse_bool(
            "DB_POOL_PRE_PING",
            os.getenv("DB_POOL_PRE_PING", str(defaults["db_pool_pre_ping"].default)),
        )

        redis_url = os.getenv("REDIS_URL", defaults["redis_url"].default).strip()
        if audit_sink == "redis":
            parsed_redis = urlparse(redis_url)
            if parsed_redis.scheme not in {"redis", "rediss", "unix"}:
                raise ValueError("REDIS_URL must use the redis://, rediss:// or unix:// scheme")

        audit_stream_maxlen = _parse_positive_int(
            "AUDIT_STREAM_MAXLEN",
            os.getenv("AUDIT_STREAM_MAXLEN", str(defaults["audit_stream_maxlen"].default)),
        )

        access_definitions_path = os.getenv("ACCESS_DEFINITIONS_PATH", "").strip() or None

        return cls(
            app_name=os.getenv("APP_NAME", defaults["app_name"].default),
            debug=_parse_bool("DEBUG", os.getenv("DEBUG", "false")),
            log_level=os.getenv("LOG_LEVEL", defaults["log_level"].default).strip().upper(),
            access_definitions_path=access_definitions_path,
            allowed_ips=allowed_ips,
            audit_sink=audit_sink,
            audit_queue_size=audit_queue_size,
            audit_sink_timeout_seconds=audit_sink_timeout_seconds,
            database_url=database_url,
            db_pool_size=db_pool_size,
            db_max_overflow=db_max_overflow,
            db_pool_recycle=db_pool_recycle,
            db_pool_pre_ping=db_pool_pre_ping,
            redis_url=redis_url,
            audit_stream_key=os.getenv(
                "AUDIT_STREAM_KEY", defaults["audit_stream_key"].default
            ).strip(),
            audit_stream_maxlen=audit_stream_maxlen,
        )


# Settings are created on first access so that importing the package never
# requires a populated environment.
_settings_instance: Settings | None = None
_settings_lock = threading.Lock()


def get_settings() -> Settings:
    """Get the settings instance, creating it from the environment on first access.

    Raises:
        ValueError: If environment variables are missing or invalid
    """
    global _settings_instance

    if _settings_instance is not None:
        return _settings_instance

    with _settings_lock:
        if _settings_instance is None:
            _settings_instance = Settings.from_env()

    return _settings_instance


def _reset_for_testing() -> None:
    global _settings_instance
    with _settings_lock:
        _settings_instance = None
