"""Runtime primitives backing the conquest HTTP API."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence

from sqlalchemy.engine import Engine

from conquest.config import Settings, get_settings
from conquest.database import check_database_health, create_db_engine, create_session_factory, init_db
from conquest.domain import models as dm
from conquest.domain.enums import ActivityType
from conquest.domain.rules_config import DEFAULT_RULES, RulesConfig
from conquest.factory import create_all_services

logger = logging.getLogger(__name__)


class ApiState:
    """Aggregated services shared by the FastAPI layer.

    Conquests run one at a time per process in a worker thread; the spatial
    index they share is not thread-safe. Concurrent processes are handled by
    the store's revision check.
    """

    def __init__(
        self,
        *,
        settings: Settings | None = None,
        engine: Engine | None = None,
        rules: RulesConfig = DEFAULT_RULES,
    ) -> None:
        self.settings = settings or get_settings()
        self.engine = engine or create_db_engine(self.settings)
        init_db(self.engine)
        self.session_factory = create_session_factory(self.engine)
        self.rules = rules

        services = create_all_services(self.session_factory, settings=self.settings, rules=rules)
        self.store = services["store"]
        self.event_mode = services["event_mode"]
        self.conquests = services["conquests"]
        self.territories = services["territories"]
        self._conquest_lock = asyncio.Lock()

    def database_healthy(self) -> bool:
        return check_database_health(self.engine)

    async def conquer(
        self,
        path: Sequence[dm.GeodeticPoint],
        owner_id: dm.UserID,
        activity_id: dm.ActivityID,
        *,
        owner_username: str | None = None,
        activity_type: ActivityType | None = None,
        name: str = "",
    ) -> dm.ConquerResult:
        async with self._conquest_lock:
            return await asyncio.to_thread(
                lambda: self.conquests.conquer(
                    path,
                    owner_id,
                    activity_id,
                    owner_username=owner_username,
                    activity_type=activity_type,
                    name=name,
                )
            )

    async def shutdown(self) -> None:
        logger.info("Disposing database engine")
        self.engine.dispose()


def build_state() -> ApiState:
    """Factory used by the API to initialize state."""

    return ApiState()
