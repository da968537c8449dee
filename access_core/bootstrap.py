"""Wiring: settings -> logging, audit sink, recorder and AccessControl."""
import logging

from .audit.recorder import AuditRecorder, ErrorChannel
from .audit.sinks import AuditSink, DatabaseAuditSink, InMemoryAuditSink, RedisStreamAuditSink
from .auth.definitions import load_definitions
from .auth.policy import NetworkAllowList
from .config import Settings
from .database import create_engine, create_session_factory
from .errors import ConfigurationError
from .infra.redis import get_async_redis_client
from .services.access_control import AccessControl

logger = logging.getLogger("access_core")


def _resolve_log_level(value: str) -> int:
    level = logging.getLevelName(value.upper())
    return level if isinstance(level, int) else logging.INFO


def configure_logging(level_name: str = "INFO") -> None:
    level = _resolve_log_level(level_name)
    if not logging.getLogger().handlers:
        logging.basicConfig(
            level=level,
            format="%(asctime)s %(levelname)s %(name)s %(message)s",
        )
    logger.setLevel(level)


def build_audit_sink(settings: Settings) -> AuditSink:
    if settings.audit_sink == "database":
        engine = create_engine(settings)
        return DatabaseAuditSink(create_session_factory(engine), engine)
    if settings.audit_sink == "redis":
        return RedisStreamAuditSink(
            get_async_redis_client(settings.redis_url),
            settings.audit_stream_key,
            maxlen=settings.audit_stream_maxlen,
        )
    return InMemoryAuditSink()


def build_access_control(
    settings: Settings,
    *,
    sink: AuditSink | None = None,
    on_error: ErrorChannel | None = None,
) -> AccessControl:
    """Build the access control service described by ``settings``.

    Configuration errors are logged and re-raised so that startup fails.
    """
    try:
        definitions = load_definitions(settings.access_definitions_path)
        access_control = AccessControl.from_definitions(
            definitions,
            recorder=AuditRecorder(
                sink if sink is not None else build_audit_sink(settings),
                max_queue_size=settings.audit_queue_size,
                sink_timeout=settings.audit_sink_timeout_seconds,
                on_error=on_error,
            ),
            ip_allow_list=NetworkAllowList(settings.allowed_ips),
        )
    except ConfigurationError as exc:
        logger.error("access_control_config_invalid code=%s message=%s", exc.code, exc.message)
        raise

    logger.info(
        "access_control_ready permissions=%d roles=%d policies=%d sink=%s",
        len(access_control.catalog),
        len(access_control.registry),
        len(access_control.policies),
        settings.audit_sink if sink is None else type(sink).__name__,
    )
    return access_control
