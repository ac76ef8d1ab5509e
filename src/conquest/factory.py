"""Service Factory for the conquest engine.

This module provides factory functions for creating service instances with
proper dependency wiring. Use these functions in production code to ensure
all service dependencies are correctly initialized.

For testing, inject protocol-based fakes instead of using these factories.

Example:
    # Production usage
    from conquest.factory import create_conquest_service
    conquests = create_conquest_service(session_factory)

    # Testing usage
    from conquest.services.conquest_service import ConquestService

    class FakePolicy:
        def is_conflict_resolution_active(self):
            return False

    conquests = ConquestService(store, FakePolicy())
"""

from sqlalchemy.orm import Session, sessionmaker

from conquest.config import Settings, get_settings
from conquest.domain.rules_config import DEFAULT_RULES, RulesConfig
from conquest.domain.spatial_index import SpatialIndex
from conquest.interfaces.activity import IActivityProvider
from conquest.interfaces.policy import IPolicyProvider
from conquest.repository import SqlSettingsStore, SqlTerritoryStore
from conquest.services.conquest_service import ConquestService
from conquest.services.event_mode_service import EventModeService
from conquest.services.territory_service import TerritoryService
from conquest.utils.cache import TTLCache


def create_territory_store(session_factory: sessionmaker[Session]) -> SqlTerritoryStore:
    """Create the SQL territory store.

    Args:
        session_factory: Session factory bound to the application engine

    Returns:
        Store opening one session per operation
    """
    return SqlTerritoryStore(session_factory)


def create_event_mode_service(
    session_factory: sessionmaker[Session], *, settings: Settings | None = None
) -> EventModeService:
    """Create an EventModeService reading the ``app_settings`` table.

    Args:
        session_factory: Session factory bound to the application engine
        settings: Supplies the cache TTL; cached application settings by default

    Returns:
        EventModeService with its own TTL cache
    """
    settings = settings or get_settings()
    cache = TTLCache(settings.event_mode_cache_ttl_seconds)
    return EventModeService(SqlSettingsStore(session_factory), cache=cache)


def create_conquest_service(
    session_factory: sessionmaker[Session],
    *,
    settings: Settings | None = None,
    policy: IPolicyProvider | None = None,
    activities: IActivityProvider | None = None,
    store: SqlTerritoryStore | None = None,
    rules: RulesConfig = DEFAULT_RULES,
) -> ConquestService:
    """Create a ConquestService with all dependencies.

    Args:
        session_factory: Session factory bound to the application engine
        settings: Index cell size and retry budget; cached settings by default
        policy: Event mode policy; a DB-backed EventModeService by default
        activities: Optional source for ``claim_activity``
        store: Store to share with other services; a new one by default
        rules: Rule constants

    Returns:
        Fully initialized ConquestService
    """
    settings = settings or get_settings()
    return ConquestService(
        store or create_territory_store(session_factory),
        policy or create_event_mode_service(session_factory, settings=settings),
        index=SpatialIndex(cell_degrees=settings.spatial_index_cell_degrees),
        activities=activities,
        rules=rules,
        max_conflict_retries=settings.max_conflict_retries,
    )


def create_territory_service(
    session_factory: sessionmaker[Session], *, store: SqlTerritoryStore | None = None
) -> TerritoryService:
    return TerritoryService(store or create_territory_store(session_factory))


def create_all_services(
    session_factory: sessionmaker[Session],
    *,
    settings: Settings | None = None,
    rules: RulesConfig = DEFAULT_RULES,
) -> dict:
    """Create all services sharing one store and one event mode service.

    Returns:
        Dictionary containing all initialized services:
        - store: SqlTerritoryStore
        - event_mode: EventModeService
        - conquests: ConquestService
        - territories: TerritoryService
    """
    settings = settings or get_settings()
    store = create_territory_store(session_factory)
    event_mode = create_event_mode_service(session_factory, settings=settings)
    return {
        "store": store,
        "event_mode": event_mode,
        "conquests": create_conquest_service(
            session_factory, settings=settings, policy=event_mode, store=store, rules=rules
        ),
        "territories": create_territory_service(session_factory, store=store),
    }
