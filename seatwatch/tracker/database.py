"""
SQLAlchemy models and snapshot persistence for watcher state.

Three independent records live in one database: user settings, the
ordered list of tracked sections, and the map of dismissed alerts. The
tracked list and the dismissal map are always written as full snapshots.
"""

from __future__ import annotations

from datetime import timezone
from typing import Optional

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum,
    Float,
    Integer,
    String,
    create_engine,
    delete,
    select,
)
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from seatwatch.catalog.client import SeatStatus
from seatwatch.config import DEFAULT_DB_URL, Settings
from seatwatch.tracker.store import SectionKey, TrackedSection


class Base(DeclarativeBase):
    pass


class TrackedSectionRow(Base):
    """One tracked section; ``position`` preserves the user's ordering."""

    __tablename__ = "tracked_sections"

    roster = Column(String(32), primary_key=True)
    class_nbr = Column(String(32), primary_key=True)
    position = Column(Integer, nullable=False, index=True)
    subject = Column(String(16), nullable=False)
    catalog_nbr = Column(String(16), nullable=False)
    title = Column(String(256), nullable=False, default="")
    section = Column(String(16), nullable=False, default="")
    component = Column(String(16), nullable=False, default="")
    last_status = Column(Enum(SeatStatus), nullable=False, default=SeatStatus.UNKNOWN)
    last_checked_at = Column(DateTime(timezone=True), nullable=True)

    def to_section(self) -> TrackedSection:
        checked = self.last_checked_at
        if checked is not None and checked.tzinfo is None:
            checked = checked.replace(tzinfo=timezone.utc)
        return TrackedSection(
            roster=self.roster,
            class_nbr=self.class_nbr,
            subject=self.subject,
            catalog_nbr=self.catalog_nbr,
            title=self.title,
            section=self.section,
            component=self.component,
            last_status=self.last_status,
            last_checked_at=checked,
        )


class DismissalRow(Base):
    __tablename__ = "dismissals"

    roster = Column(String(32), primary_key=True)
    class_nbr = Column(String(32), primary_key=True)
    expires_at = Column(Float, nullable=False)


class SettingsRow(Base):
    __tablename__ = "settings"

    id = Column(Integer, primary_key=True)
    sound_enabled = Column(Boolean, nullable=True)
    notify_enabled = Column(Boolean, nullable=True)
    polling_interval = Column(Integer, nullable=True)


class StateDB:
    """
    Load/save interface for the watcher's persisted state.

    Usage:
        db = StateDB("sqlite:///seatwatch.db")
        db.save_tracked(store.list())
        sections = db.load_tracked()
        settings = db.load_settings()
    """

    SETTINGS_ID = 1

    def __init__(self, db_url: str = DEFAULT_DB_URL) -> None:
        self.engine = create_engine(db_url, echo=False)
        Base.metadata.create_all(self.engine)
        self.SessionFactory = sessionmaker(bind=self.engine)

    def _session(self) -> Session:
        return self.SessionFactory()

    def close(self) -> None:
        self.engine.dispose()

    # ---- Tracked sections ----

    def load_tracked(self) -> list[TrackedSection]:
        with self._session() as session:
            rows = session.scalars(
                select(TrackedSectionRow).order_by(TrackedSectionRow.position)
            ).all()
            return [row.to_section() for row in rows]

    def save_tracked(self, sections: list[TrackedSection]) -> None:
        """Replace the stored list with ``sections``."""
        with self._session() as session:
            session.execute(delete(TrackedSectionRow))
            for position, item in enumerate(sections):
                session.add(
                    TrackedSectionRow(
                        roster=item.roster,
                        class_nbr=item.class_nbr,
                        position=position,
                        subject=item.subject,
                        catalog_nbr=item.catalog_nbr,
                        title=item.title,
                        section=item.section,
                        component=item.component,
                        last_status=item.last_status,
                        last_checked_at=item.last_checked_at,
                    )
                )
            session.commit()

    # ---- Dismissals ----

    def load_dismissals(self) -> dict[SectionKey, float]:
        with self._session() as session:
            rows = session.scalars(select(DismissalRow)).all()
            return {(row.roster, row.class_nbr): row.expires_at for row in rows}

    def save_dismissals(self, dismissals: dict[SectionKey, float]) -> None:
        """Replace the stored dismissal map with ``dismissals``."""
        with self._session() as session:
            session.execute(delete(DismissalRow))
            for (roster, class_nbr), expires_at in dismissals.items():
                session.add(
                    DismissalRow(roster=roster, class_nbr=class_nbr, expires_at=expires_at)
                )
            session.commit()

    # ---- Settings ----

    def load_settings(self, default_interval: Optional[int] = None) -> Settings:
        with self._session() as session:
            row = session.get(SettingsRow, self.SETTINGS_ID)
            if row is None:
                settings = Settings()
                if default_interval is not None:
                    settings.polling_interval = default_interval
                return settings
            return Settings.from_stored(
                row.sound_enabled, row.notify_enabled, row.polling_interval
            )

    def save_settings(self, settings: Settings) -> None:
        with self._session() as session:
            row = session.get(SettingsRow, self.SETTINGS_ID)
            if row is None:
                row = SettingsRow(id=self.SETTINGS_ID)
                session.add(row)
            row.sound_enabled = settings.sound_enabled
            row.notify_enabled = settings.notify_enabled
            row.polling_interval = settings.polling_interval
            session.commit()
