from __future__ import annotations

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from slokeeper.config import Settings, get_settings

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None
_telemetry_engine: AsyncEngine | None = None


def _create_engine(url: str, cfg: Settings) -> AsyncEngine:
    if url.startswith("sqlite"):
        return create_async_engine(url, echo=cfg.debug)
    return create_async_engine(
        url,
        echo=cfg.debug,
        pool_size=cfg.db_pool_size,
        max_overflow=cfg.db_max_overflow,
        pool_timeout=cfg.db_pool_timeout,
        pool_recycle=cfg.db_pool_recycle,
        pool_pre_ping=True,
    )


def init_engine(settings: Settings | None = None) -> None:
    """Initialise SQLAlchemy engines lazily with connection pooling."""

    global _engine, _session_factory, _telemetry_engine

    cfg = settings or get_settings()
    if _engine is not None:
        return

    _engine = _create_engine(cfg.database_url, cfg)
    _session_factory = async_sessionmaker(_engine, expire_on_commit=False)
    if cfg.effective_telemetry_url == cfg.database_url:
        _telemetry_engine = _engine
    else:
        _telemetry_engine = _create_engine(cfg.effective_telemetry_url, cfg)


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Session factory for the SLO configuration store."""
    if _session_factory is None:
        init_engine()
    assert _session_factory is not None
    return _session_factory


def get_telemetry_engine() -> AsyncEngine:
    """Engine for the aggregate and raw telemetry tables."""
    if _telemetry_engine is None:
        init_engine()
    assert _telemetry_engine is not None
    return _telemetry_engine


async def dispose_engines() -> None:
    global _engine, _session_factory, _telemetry_engine

    engines = {id(e): e for e in (_engine, _telemetry_engine) if e is not None}
    for engine in engines.values():
        await engine.dispose()
    _engine = _session_factory = _telemetry_engine = None
