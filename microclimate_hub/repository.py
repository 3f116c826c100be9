"""SQLAlchemy-backed report store.

Scalar filters (severity, status, date range and a bounding box for the radius
query) are pushed into SQL. Tag containment and exact great-circle distance are
checked in Python, after which pagination is applied to the filtered sequence.
Rows are ordered newest first with the id as a tie-breaker, so paging over an
unchanged table never repeats or skips a report.
"""

from __future__ import annotations

import datetime as dt
import math
import uuid
from typing import Callable, Iterable, List, Optional

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    Float,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
    func,
    select,
)
from sqlalchemy.engine import Engine

from microclimate_hub.domain import (
    GeoRadius,
    Location,
    Page,
    Report,
    ReportCreate,
    ReportFilters,
    ReportStatus,
    ReportUpdate,
    Severity,
)
from utils.logging_utils import get_tagged_logger, mask_db_url

logger = get_tagged_logger(__name__, tag="repository")

EARTH_RADIUS_KM = 6371.0088
KM_PER_DEGREE_LAT = 111.32

metadata = MetaData()

reports_table = Table(
    "reports",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("user_id", String(64), nullable=False, index=True),
    Column("temperature", Float, nullable=False),
    Column("latitude", Float, nullable=False),
    Column("longitude", Float, nullable=False),
    Column("address", String(255), nullable=False, default=""),
    Column("city", String(128), nullable=False, default=""),
    Column("country", String(128), nullable=False, default=""),
    Column("postal_code", String(32)),
    Column("description", Text, nullable=False, default=""),
    Column("images", JSON, nullable=False),
    Column("voice_note", String(1024)),
    Column("severity", String(16), nullable=False, index=True),
    Column("status", String(16), nullable=False, index=True),
    Column("tags", JSON, nullable=False),
    Column("created_at", DateTime(timezone=True), nullable=False, index=True),
    Column("updated_at", DateTime(timezone=True), nullable=False),
)


def _utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


def _as_utc(value: dt.datetime) -> dt.datetime:
    """Treat naive timestamps as UTC and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=dt.timezone.utc)
    return value.astimezone(dt.timezone.utc)


def haversine_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance between two points in kilometres."""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    dphi = phi2 - phi1
    dlmb = math.radians(lng2 - lng1)
    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlmb / 2) ** 2
    return 2 * EARTH_RADIUS_KM * math.asin(min(1.0, math.sqrt(a)))


def _row_to_report(row) -> Report:
    m = row._mapping
    return Report(
        id=m["id"],
        user_id=m["user_id"],
        temperature=m["temperature"],
        location=Location(
            latitude=m["latitude"],
            longitude=m["longitude"],
            address=m["address"],
            city=m["city"],
            country=m["country"],
            postal_code=m["postal_code"],
        ),
        description=m["description"],
        images=list(m["images"] or []),
        voice_note=m["voice_note"],
        severity=Severity(m["severity"]),
        status=ReportStatus(m["status"]),
        tags=list(m["tags"] or []),
        created_at=_as_utc(m["created_at"]),
        updated_at=_as_utc(m["updated_at"]),
    )


class ReportRepository:
    """CRUD and filtered pagination over the `reports` table."""

    def __init__(self, engine: Engine, *, now: Callable[[], dt.datetime] = _utcnow) -> None:
        self.engine = engine
        self._now = now

    @classmethod
    def from_url(cls, database_url: str, **kwargs) -> "ReportRepository":
        """Create an engine from a URL, ensure the schema exists, and build the repository."""
        logger.info("Connecting report store", extra={"db_url": mask_db_url(database_url)})
        engine = create_engine(database_url, future=True)
        repo = cls(engine, **kwargs)
        repo.create_schema()
        return repo

    def create_schema(self) -> None:
        metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # queries
    # ------------------------------------------------------------------

    @staticmethod
    def _bounding_box(radius: GeoRadius):
        """Lat/lng bounds enclosing the circle; longitude bounds are skipped near the poles or the antimeridian."""
        dlat = radius.radius_km / KM_PER_DEGREE_LAT
        conditions = [
            reports_table.c.latitude >= radius.lat - dlat,
            reports_table.c.latitude <= radius.lat + dlat,
        ]
        cos_lat = math.cos(math.radians(radius.lat))
        if cos_lat > 1e-6:
            dlng = radius.radius_km / (KM_PER_DEGREE_LAT * cos_lat)
            lo, hi = radius.lng - dlng, radius.lng + dlng
            if lo >= -180 and hi <= 180:
                conditions += [reports_table.c.longitude >= lo, reports_table.c.longitude <= hi]
        return conditions

    def _sql_conditions(self, filters: ReportFilters) -> list:
        conditions = []
        if filters.severity:
            conditions.append(reports_table.c.severity == filters.severity.value)
        if filters.status:
            conditions.append(reports_table.c.status == filters.status.value)
        if filters.date_range and filters.date_range.start:
            conditions.append(reports_table.c.created_at >= _as_utc(filters.date_range.start))
        if filters.date_range and filters.date_range.end:
            conditions.append(reports_table.c.created_at <= _as_utc(filters.date_range.end))
        if filters.radius:
            conditions.extend(self._bounding_box(filters.radius))
        return conditions

    @staticmethod
    def _matches_in_python(report: Report, filters: ReportFilters) -> bool:
        if filters.tags and not set(filters.tags).issubset(report.tags):
            return False
        if filters.radius:
            r = filters.radius
            if haversine_km(r.lat, r.lng, report.location.latitude, report.location.longitude) > r.radius_km:
                return False
        return True

    def list(self, filters: ReportFilters | None = None, page: int = 1, page_size: int = 20) -> Page[Report]:
        """Return page `page` (1-based) of reports matching every filter."""
        if page < 1 or page_size < 1:
            raise ValueError("page and page_size must be positive")
        filters = filters or ReportFilters()
        conditions = self._sql_conditions(filters)
        ordered = (
            select(reports_table)
            .where(*conditions)
            .order_by(reports_table.c.created_at.desc(), reports_table.c.id.desc())
        )
        offset = (page - 1) * page_size

        with self.engine.connect() as conn:
            if not filters.tags and not filters.radius:
                total = conn.execute(select(func.count()).select_from(reports_table).where(*conditions)).scalar_one()
                rows = conn.execute(ordered.limit(page_size).offset(offset)).all()
                items = [_row_to_report(row) for row in rows]
            else:
                matching = [
                    report for report in (_row_to_report(row) for row in conn.execute(ordered))
                    if self._matches_in_python(report, filters)
                ]
                total = len(matching)
                items = matching[offset:offset + page_size]

        return Page[Report](
            items=items,
            page=page,
            page_size=page_size,
            total=total,
            has_next=offset + len(items) < total,
        )

    def all(self, since: dt.datetime | None = None) -> List[Report]:
        """Every report, newest first, optionally limited to those created after `since`."""
        stmt = select(reports_table).order_by(reports_table.c.created_at.desc(), reports_table.c.id.desc())
        if since is not None:
            stmt = stmt.where(reports_table.c.created_at >= _as_utc(since))
        with self.engine.connect() as conn:
            return [_row_to_report(row) for row in conn.execute(stmt)]

    def get(self, report_id: str) -> Optional[Report]:
        with self.engine.connect() as conn:
            row = conn.execute(select(reports_table).where(reports_table.c.id == report_id)).first()
        return _row_to_report(row) if row else None

    # ------------------------------------------------------------------
    # writes
    # ------------------------------------------------------------------

    def create(self, payload: ReportCreate, user_id: str) -> Report:
        now = _as_utc(self._now())
        values = {
            "id": str(uuid.uuid4()),
            "user_id": user_id,
            "temperature": payload.temperature,
            "latitude": payload.location.latitude,
            "longitude": payload.location.longitude,
            "address": payload.location.address,
            "city": payload.location.city,
            "country": payload.location.country,
            "postal_code": payload.location.postal_code,
            "description": payload.description,
            "images": list(payload.images),
            "voice_note": payload.voice_note,
            "severity": payload.resolved_severity().value,
            "status": ReportStatus.PENDING.value,
            "tags": list(payload.tags),
            "created_at": now,
            "updated_at": now,
        }
        with self.engine.begin() as conn:
            conn.execute(reports_table.insert().values(**values))
        logger.info("Created report", extra={"report_id": values["id"], "user_id": user_id})
        return self.get(values["id"])  # type: ignore[return-value]

    def update(self, report_id: str, changes: ReportUpdate) -> Optional[Report]:
        """Apply the provided fields; returns None when the report does not exist."""
        provided = changes.model_dump(exclude_unset=True)
        values: dict = {}
        location = provided.pop("location", None)
        if location is not None:
            for src, dest in (("latitude", "latitude"), ("longitude", "longitude"), ("address", "address"),
                              ("city", "city"), ("country", "country"), ("postal_code", "postal_code")):
                values[dest] = location.get(src)
        for key in ("temperature", "description", "images", "voice_note", "tags"):
            if key in provided:
                values[key] = provided[key]
        for key in ("severity", "status"):
            if provided.get(key) is not None:
                values[key] = provided[key].value if hasattr(provided[key], "value") else provided[key]
        values["updated_at"] = _as_utc(self._now())

        with self.engine.begin() as conn:
            result = conn.execute(reports_table.update().where(reports_table.c.id == report_id).values(**values))
            if result.rowcount == 0:
                return None
        return self.get(report_id)

    def delete(self, report_id: str) -> bool:
        with self.engine.begin() as conn:
            result = conn.execute(reports_table.delete().where(reports_table.c.id == report_id))
            return result.rowcount > 0

    def bulk_insert(self, reports: Iterable[Report]) -> None:
        """Insert fully-formed reports (seeding, migrations, tests)."""
        rows = [
            {
                "id": r.id,
                "user_id": r.user_id,
                "temperature": r.temperature,
                "latitude": r.location.latitude,
                "longitude": r.location.longitude,
                "address": r.location.address,
                "city": r.location.city,
                "country": r.location.country,
                "postal_code": r.location.postal_code,
                "description": r.description,
                "images": list(r.images),
                "voice_note": r.voice_note,
                "severity": r.severity.value,
                "status": r.status.value,
                "tags": list(r.tags),
                "created_at": _as_utc(r.created_at),
                "updated_at": _as_utc(r.updated_at),
            }
            for r in reports
        ]
        if not rows:
            return
        with self.engine.begin() as conn:
            conn.execute(reports_table.insert(), rows)
