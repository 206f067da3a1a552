from datetime import date, datetime

from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel
from sqlalchemy import (
    Column,
    DateTime,
    Integer,
    MetaData,
    String,
    Table,
    create_engine,
    func,
    insert,
    select,
)

from recurrence_engine.calendar_math import DateWindow, Period
from recurrence_engine.logging_config import configure_logging, get_logger
from recurrence_engine.recurrence_generator import generate_recurring_dates
from recurrence_engine.recurrence_rule import (
    RecurrenceRule,
    RecurrenceWeekday,
)
from recurrence_engine.settings import load_settings

settings = load_settings()
configure_logging(settings.log_level)
logger = get_logger(__name__)

app = FastAPI()

app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.frontend_origin],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

connect_args = {}
if settings.database_url.startswith("sqlite"):
    connect_args = {"check_same_thread": False}

engine = create_engine(settings.database_url, connect_args=connect_args)
metadata = MetaData()

recurrence_rules = Table(
    "recurrence_rules",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(255), nullable=False),
    Column("payload", String(500), nullable=False),
    Column("created_at", DateTime, nullable=False, server_default=func.now()),
)


@app.on_event("startup")
def init_db() -> None:
    metadata.create_all(engine)


class RecurrenceFields(BaseModel):
    frequency: int
    period: int
    index: int | None = None
    weekdays: list[int] | None = None

    def to_rule(self) -> RecurrenceRule:
        try:
            return RecurrenceRule(
                frequency=self.frequency,
                period=Period(self.period),
                index=self.index,
                weekdays=None
                if self.weekdays is None
                else tuple(RecurrenceWeekday(value) for value in self.weekdays),
            )
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc

    @classmethod
    def from_rule(cls, rule: RecurrenceRule) -> "RecurrenceFields":
        return cls(**rule.to_payload().model_dump())


class RecurrenceSummaryResponse(BaseModel):
    frequency: int
    period: str
    weekdays: list[str]
    month_day: int | None = None


class PreviewPayload(RecurrenceFields):
    start_date: date
    end_date: date
    filter_start: date | None = None
    filter_end: date | None = None


class PreviewResponse(BaseModel):
    dates: list[date]
    summary: RecurrenceSummaryResponse


class DecodePayload(BaseModel):
    payload: str | None = None


class DecodeResponse(BaseModel):
    rule: RecurrenceFields | None = None


class StoredRulePayload(RecurrenceFields):
    name: str


class StoredRuleResponse(BaseModel):
    id: int
    name: str
    payload: str
    rule: RecurrenceFields | None = None
    created_at: datetime | None = None


class OccurrencesResponse(BaseModel):
    rule_id: int
    dates: list[date]


def build_windows(
    start_date: date,
    end_date: date,
    filter_start: date | None,
    filter_end: date | None,
) -> tuple[DateWindow, DateWindow | None]:
    if start_date > end_date:
        raise HTTPException(status_code=400, detail="Start date must be on or before end date.")
    window = DateWindow(start_date, end_date)
    if window.days > settings.max_preview_days:
        raise HTTPException(
            status_code=400,
            detail=f"Date window must not exceed {settings.max_preview_days} days.",
        )
    if (filter_start is None) != (filter_end is None):
        raise HTTPException(
            status_code=400, detail="Filter start and end must be provided together."
        )
    if filter_start is None or filter_end is None:
        return window, None
    if filter_start > filter_end:
        raise HTTPException(status_code=400, detail="Filter start must be on or before filter end.")
    return window, DateWindow(filter_start, filter_end)


def summary_response(rule: RecurrenceRule, anchor: date) -> RecurrenceSummaryResponse:
    summary = rule.summarize(anchor)
    return RecurrenceSummaryResponse(
        frequency=summary.frequency,
        period=summary.period,
        weekdays=list(summary.weekdays),
        month_day=summary.month_day,
    )


def stored_rule_response(row) -> StoredRuleResponse:
    rule = RecurrenceRule.decode(row["payload"])
    if rule is None:
        logger.warning("Stored recurrence %s has an undecodable payload.", row["id"])
    return StoredRuleResponse(
        id=row["id"],
        name=row["name"],
        payload=row["payload"],
        rule=RecurrenceFields.from_rule(rule) if rule else None,
        created_at=row["created_at"],
    )


@app.get("/health")
def health() -> dict:
    return {"status": "ok"}


@app.post("/recurrences/preview", response_model=PreviewResponse)
def preview_recurrence(payload: PreviewPayload) -> PreviewResponse:
    rule = payload.to_rule()
    window, filter_window = build_windows(
        payload.start_date, payload.end_date, payload.filter_start, payload.filter_end
    )
    dates = generate_recurring_dates(rule, window, filter_window, settings.calendar)
    return PreviewResponse(dates=dates, summary=summary_response(rule, window.start))


@app.post("/recurrences/decode", response_model=DecodeResponse)
def decode_recurrence(payload: DecodePayload) -> DecodeResponse:
    rule = RecurrenceRule.decode(payload.payload)
    return DecodeResponse(rule=RecurrenceFields.from_rule(rule) if rule else None)


@app.get("/recurrences", response_model=list[StoredRuleResponse])
def list_recurrences() -> list[StoredRuleResponse]:
    with engine.begin() as conn:
        rows = conn.execute(
            select(recurrence_rules).order_by(recurrence_rules.c.id.asc())
        ).mappings().all()
    return [stored_rule_response(row) for row in rows]


@app.post("/recurrences", response_model=StoredRuleResponse)
def create_recurrence(payload: StoredRulePayload) -> StoredRuleResponse:
    name = payload.name.strip()
    if not name:
        raise HTTPException(status_code=400, detail="Name is required.")
    rule = payload.to_rule()
    stmt = (
        insert(recurrence_rules)
        .values(name=name, payload=rule.encode())
        .returning(
            recurrence_rules.c.id,
            recurrence_rules.c.name,
            recurrence_rules.c.payload,
            recurrence_rules.c.created_at,
        )
    )
    with engine.begin() as conn:
        row = conn.execute(stmt).mappings().first()
    if not row:
        raise HTTPException(status_code=500, detail="Failed to store recurrence.")
    logger.info("Stored recurrence %s (%s).", row["id"], row["payload"])
    return stored_rule_response(row)


@app.get("/recurrences/{rule_id}", response_model=StoredRuleResponse)
def get_recurrence(rule_id: int) -> StoredRuleResponse:
    with engine.begin() as conn:
        row = conn.execute(
            select(recurrence_rules).where(recurrence_rules.c.id == rule_id)
        ).mappings().first()
    if not row:
        raise HTTPException(status_code=404, detail="Recurrence not found.")
    return stored_rule_response(row)


@app.delete("/recurrences/{rule_id}")
def delete_recurrence(rule_id: int) -> dict:
    stmt = recurrence_rules.delete().where(recurrence_rules.c.id == rule_id)
    with engine.begin() as conn:
        result = conn.execute(stmt)
        if result.rowcount == 0:
            raise HTTPException(status_code=404, detail="Recurrence not found.")
    return {"status": "deleted"}


@app.get("/recurrences/{rule_id}/dates", response_model=OccurrencesResponse)
def recurrence_dates(
    rule_id: int,
    start_date: date = Query(...),
    end_date: date = Query(...),
    filter_start: date | None = Query(None),
    filter_end: date | None = Query(None),
) -> OccurrencesResponse:
    window, filter_window = build_windows(start_date, end_date, filter_start, filter_end)
    with engine.begin() as conn:
        payload = conn.execute(
            select(recurrence_rules.c.payload).where(recurrence_rules.c.id == rule_id)
        ).scalar_one_or_none()
    if payload is None:
        raise HTTPException(status_code=404, detail="Recurrence not found.")
    rule = RecurrenceRule.decode(payload)
    if rule is None:
        raise HTTPException(status_code=422, detail="Stored recurrence could not be decoded.")
    dates = generate_recurring_dates(rule, window, filter_window, settings.calendar)
    return OccurrencesResponse(rule_id=rule_id, dates=dates)
