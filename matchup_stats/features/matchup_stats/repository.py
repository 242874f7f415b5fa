"""Persistence for finalized matchup statistics.

``MatchupStatsStore`` is the contract callers depend on. Both backends share
``SQLAlchemyMatchupStatsStore`` and differ only in the dialect-specific
``INSERT ... ON CONFLICT`` construct they build.
"""

import abc
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Protocol, Sequence

import structlog
from sqlalchemy import and_, case, delete, func, select, union
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError

from matchup_stats.core.config import Settings
from matchup_stats.core.database import DatabaseManager, build_database_url
from matchup_stats.core.enums import DatabaseProvider, Lane
from matchup_stats.core.exceptions import DatabaseError
from matchup_stats.core.models import Base

from .orm_models import MatchupStatsCacheORM
from .schemas import (
    CacheOverview,
    CachedPair,
    MatchupStatRecord,
    MatchupStats,
    datetime_to_ms,
    ms_to_datetime,
    to_utc_millis,
)

logger = structlog.get_logger(__name__)

UPSERT_CHUNK_SIZE = 200
DEFAULT_PAIR_LIMIT = 500
DEFAULT_CHAMPION_LIMIT = 300


class MatchupStatsStore(Protocol):
    """Repository interface for cached matchup statistics"""

    async def initialize(self) -> None:
        """Create the cache table if it does not exist"""
        ...

    async def close(self) -> None:
        ...

    async def get(
        self, patch: str, lane: Lane, player_champion: str, enemy_champion: str
    ) -> Optional[MatchupStatRecord]:
        """Point lookup; stale rows are returned too"""
        ...

    async def upsert(self, record: MatchupStatRecord) -> MatchupStatRecord:
        """Insert or replace one row on its unique key"""
        ...

    async def upsert_many(self, records: Sequence[MatchupStatRecord]) -> int:
        """Insert or replace rows in independently committed chunks"""
        ...

    async def get_cache_overview(
        self, patch: str, lane: Optional[Lane] = None, now: Optional[datetime] = None
    ) -> CacheOverview:
        ...

    async def list_cached_pairs(
        self,
        patch: str,
        lane: Optional[Lane] = None,
        limit: int = DEFAULT_PAIR_LIMIT,
        fresh_only: bool = False,
        now: Optional[datetime] = None,
    ) -> List[CachedPair]:
        ...

    async def list_champions_by_lane(
        self, patch: str, lane: Lane, limit: int = DEFAULT_CHAMPION_LIMIT
    ) -> List[str]:
        ...

    async def prune_expired(self, now: Optional[datetime] = None) -> int:
        """Delete rows whose expiry is at or before ``now``"""
        ...


def _now_ms(now: Optional[datetime]) -> int:
    return datetime_to_ms(now or datetime.now(timezone.utc))


def _lane_value(lane: Lane | str) -> str:
    return lane.value if isinstance(lane, Lane) else Lane(lane).value


class SQLAlchemyMatchupStatsStore(abc.ABC):
    """SQLAlchemy implementation of the matchup stats store"""

    backend_name = "sqlalchemy"

    def __init__(self, db: DatabaseManager):
        self.db = db

    # Dialect hook

    @abc.abstractmethod
    def _insert(self) -> Any:
        """Return the dialect's ``insert`` construct supporting ON CONFLICT."""

    def _upsert_statement(self, rows: List[Dict[str, Any]]) -> Any:
        stmt = self._insert()(MatchupStatsCacheORM).values(rows)
        return stmt.on_conflict_do_update(
            index_elements=["patch", "lane", "player_champion", "enemy_champion"],
            set_={
                "stats_json": stmt.excluded.stats_json,
                "computed_at": stmt.excluded.computed_at,
                "expires_at": stmt.excluded.expires_at,
            },
        )

    # Conversion

    @staticmethod
    def _to_row(record: MatchupStatRecord) -> Dict[str, Any]:
        return {
            "patch": record.patch,
            "lane": _lane_value(record.lane),
            "player_champion": record.player_champion,
            "enemy_champion": record.enemy_champion,
            "stats_json": record.stats.model_dump(mode="json", by_alias=True),
            "computed_at": record.computed_at,
            "expires_at": datetime_to_ms(record.expires_at),
        }

    @classmethod
    def _chunk_rows(cls, records: Sequence[MatchupStatRecord]) -> List[Dict[str, Any]]:
        # Postgres rejects an ON CONFLICT statement that touches a key twice
        latest = {record.key: record for record in records}
        return [cls._to_row(record) for record in latest.values()]

    @staticmethod
    def _to_record(row: MatchupStatsCacheORM) -> MatchupStatRecord:
        return MatchupStatRecord(
            patch=row.patch,
            lane=Lane(row.lane),
            player_champion=row.player_champion,
            enemy_champion=row.enemy_champion,
            stats=MatchupStats.model_validate(row.stats_json),
            computed_at=to_utc_millis(row.computed_at),
            expires_at=ms_to_datetime(row.expires_at),
        )

    # Lifecycle

    async def initialize(self) -> None:
        async with self.db.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Matchup stats store initialized", backend=self.backend_name)

    async def close(self) -> None:
        await self.db.close()

    # Reads

    async def get(
        self, patch: str, lane: Lane, player_champion: str, enemy_champion: str
    ) -> Optional[MatchupStatRecord]:
        stmt = (
            select(MatchupStatsCacheORM)
            .where(
                MatchupStatsCacheORM.patch == patch,
                MatchupStatsCacheORM.lane == _lane_value(lane),
                MatchupStatsCacheORM.player_champion == player_champion,
                MatchupStatsCacheORM.enemy_champion == enemy_champion,
            )
            .limit(1)
        )
        async with self.db.get_session() as session:
            row = (await session.execute(stmt)).scalar_one_or_none()
        return self._to_record(row) if row is not None else None

    async def get_cache_overview(
        self, patch: str, lane: Optional[Lane] = None, now: Optional[datetime] = None
    ) -> CacheOverview:
        now_ms = _now_ms(now)
        expires = MatchupStatsCacheORM.expires_at
        stmt = select(
            func.count(),
            func.coalesce(func.sum(case((expires > now_ms, 1), else_=0)), 0),
            func.coalesce(func.sum(case((expires <= now_ms, 1), else_=0)), 0),
            func.max(MatchupStatsCacheORM.computed_at),
        ).where(MatchupStatsCacheORM.patch == patch)
        if lane is not None:
            stmt = stmt.where(MatchupStatsCacheORM.lane == _lane_value(lane))

        async with self.db.get_session() as session:
            total, fresh, stale, latest = (await session.execute(stmt)).one()

        return CacheOverview(
            total_count=int(total or 0),
            fresh_count=int(fresh or 0),
            stale_count=int(stale or 0),
            latest_computed_at=to_utc_millis(latest) if latest is not None else None,
        )

    async def list_cached_pairs(
        self,
        patch: str,
        lane: Optional[Lane] = None,
        limit: int = DEFAULT_PAIR_LIMIT,
        fresh_only: bool = False,
        now: Optional[datetime] = None,
    ) -> List[CachedPair]:
        now_ms = _now_ms(now)
        stmt = select(MatchupStatsCacheORM).where(MatchupStatsCacheORM.patch == patch)
        if lane is not None:
            stmt = stmt.where(MatchupStatsCacheORM.lane == _lane_value(lane))
        if fresh_only:
            stmt = stmt.where(MatchupStatsCacheORM.expires_at > now_ms)
        stmt = stmt.order_by(
            MatchupStatsCacheORM.computed_at.desc(), MatchupStatsCacheORM.id.desc()
        ).limit(max(1, int(limit)))

        async with self.db.get_session() as session:
            rows = (await session.execute(stmt)).scalars().all()

        return [
            CachedPair(
                lane=Lane(row.lane),
                player_champion=row.player_champion,
                enemy_champion=row.enemy_champion,
                computed_at=to_utc_millis(row.computed_at),
                expires_at=ms_to_datetime(row.expires_at),
                fresh=row.expires_at > now_ms,
            )
            for row in rows
        ]

    async def list_champions_by_lane(
        self, patch: str, lane: Lane, limit: int = DEFAULT_CHAMPION_LIMIT
    ) -> List[str]:
        scope = and_(
            MatchupStatsCacheORM.patch == patch,
            MatchupStatsCacheORM.lane == _lane_value(lane),
        )
        champions = union(
            select(MatchupStatsCacheORM.player_champion.label("champion")).where(scope),
            select(MatchupStatsCacheORM.enemy_champion.label("champion")).where(scope),
        ).subquery()
        stmt = (
            select(champions.c.champion)
            .order_by(champions.c.champion)
            .limit(max(1, int(limit)))
        )

        async with self.db.get_session() as session:
            names = (await session.execute(stmt)).scalars().all()
        return sorted(names, key=str.casefold)

    # Writes

    async def upsert(self, record: MatchupStatRecord) -> MatchupStatRecord:
        await self.upsert_many([record])
        return record

    async def upsert_many(self, records: Sequence[MatchupStatRecord]) -> int:
        """
        Upsert records in chunks of ``UPSERT_CHUNK_SIZE``.

        Each chunk commits on its own; a failing chunk is rolled back and the
        error raised, leaving earlier chunks committed. Within a chunk the
        last record for a key wins.

        Returns:
            Number of rows written
        """
        if not records:
            return 0

        written = 0
        for start in range(0, len(records), UPSERT_CHUNK_SIZE):
            chunk = self._chunk_rows(records[start:start + UPSERT_CHUNK_SIZE])
            try:
                async with self.db.get_session() as session:
                    async with session.begin():
                        await session.execute(self._upsert_statement(chunk))
            except SQLAlchemyError as e:
                logger.error(
                    "Matchup stats chunk upsert failed",
                    chunk_start=start,
                    chunk_size=len(chunk),
                    rows_committed=written,
                    error=str(e),
                )
                raise DatabaseError(
                    "Failed to upsert matchup stats chunk",
                    operation="upsert_many",
                    context={"chunk_start": start, "rows_committed": written},
                    original_error=e,
                ) from e
            written += len(chunk)

        logger.debug("Upserted matchup stats", rows=written, backend=self.backend_name)
        return written

    async def prune_expired(self, now: Optional[datetime] = None) -> int:
        stmt = delete(MatchupStatsCacheORM).where(
            MatchupStatsCacheORM.expires_at <= _now_ms(now)
        )
        async with self.db.get_session() as session:
            async with session.begin():
                result = await session.execute(stmt)
                deleted = result.rowcount or 0
        logger.info("Pruned expired matchup stats", deleted=deleted)
        return deleted


class SQLiteMatchupStatsStore(SQLAlchemyMatchupStatsStore):
    """Single-file store backed by aiosqlite."""

    backend_name = "sqlite"

    def _insert(self) -> Any:
        return sqlite.insert


class PostgresMatchupStatsStore(SQLAlchemyMatchupStatsStore):
    """Networked store backed by asyncpg."""

    backend_name = "postgres"

    def _insert(self) -> Any:
        return postgresql.insert


STORE_CLASSES = {
    DatabaseProvider.SQLITE: SQLiteMatchupStatsStore,
    DatabaseProvider.POSTGRES: PostgresMatchupStatsStore,
}


def create_stats_store(settings: Settings) -> SQLAlchemyMatchupStatsStore:
    """
    Build the store selected by ``DB_PROVIDER``.

    Raises:
        ValueError: If the provider is not one of ``sqlite`` or ``postgres``
    """
    try:
        store_class = STORE_CLASSES[DatabaseProvider(settings.db_provider)]
    except (KeyError, ValueError) as e:
        raise ValueError(f"Unsupported DB_PROVIDER: {settings.db_provider!r}") from e
    return store_class(DatabaseManager(build_database_url(settings), echo=settings.debug))
