"""Key/value access to the ``app_settings`` table."""

from __future__ import annotations

from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from conquest.domain.errors import PersistenceError
from conquest.models import AppSetting


class SqlSettingsStore:
    """Read and write JSON application settings."""

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    def get_setting(self, key: str) -> dict[str, Any] | None:
        try:
            with self._session_factory() as session:
                row = session.get(AppSetting, key)
                return dict(row.value) if row is not None else None
        except SQLAlchemyError as exc:
            raise PersistenceError(f"reading setting {key!r} failed: {exc}") from exc

    def put_setting(self, key: str, value: dict[str, Any]) -> None:
        try:
            with self._session_factory() as session, session.begin():
                row = session.get(AppSetting, key)
                if row is None:
                    session.add(AppSetting(key=key, value=value))
                else:
                    row.value = value
        except SQLAlchemyError as exc:
            raise PersistenceError(f"writing setting {key!r} failed: {exc}") from exc
