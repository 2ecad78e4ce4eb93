import logging
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session

from aggregation import CategorySummary, CategoryTotal, round_half_up
from config import get_settings
from database import SessionLocal
from grouping import Interval, TransactionRow
from models import ExclusionScope
from navigation import (
    RangeNavLink,
    TransactionsQuery,
    parse_navigation,
    resolve,
)
from periods import DateRange, InvalidNavigation, range_label
from schemas import ExcludedTagsIn, TagIn, TransactionIn, TransactionTagIn
from services import (
    DashboardService,
    ExclusionService,
    TagNotFound,
    TagService,
    TransactionNotFound,
    TransactionService,
    TransactionsView,
    TransactionsViewService,
    local_today,
)
from trends import TagStat

settings = get_settings()
logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)

app = FastAPI(title="Budget Tracker")

TRANSACTIONS_ROUTE = "/api/transactions"


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def _parse_bool(value: Optional[str]) -> bool:
    return (value or "").strip().lower() in {"1", "true", "on", "yes"}


def _parse_date(value: Optional[str], name: str) -> Optional[date]:
    if not value:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=f"Invalid {name}: {value}") from exc


def _parse_scope(scope: str) -> ExclusionScope:
    try:
        return ExclusionScope(scope)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail="Unknown exclusion scope") from exc


def _range_payload(date_range: DateRange) -> dict[str, object]:
    return {
        "start": date_range.start.isoformat(),
        "end": date_range.end.isoformat(),
        "label": range_label(date_range),
    }


def _row_payload(row: TransactionRow) -> dict[str, object]:
    return {
        "id": row.id,
        "date": row.date.isoformat(),
        "amount_cents": row.amount_cents,
        "description": row.description,
        "tag_id": row.tag_id,
        "tag": row.tag_name,
    }


def _category_payload(category: CategoryTotal) -> dict[str, object]:
    return {
        "tag_id": category.tag_id,
        "label": category.label,
        "total_cents": category.total_cents,
        "percent": category.percent,
        "kind": category.kind.value,
        "transaction_count": category.transaction_count,
    }


def _summary_payload(summary: Optional[CategorySummary]):
    if summary is None:
        return None
    return {
        "income": [_category_payload(c) for c in summary.income_categories],
        "expenses": [_category_payload(c) for c in summary.expense_categories],
    }


def _interval_payload(interval: Interval) -> dict[str, object]:
    return {
        "range": _range_payload(interval.range),
        "income_cents": interval.totals.income_cents,
        "expense_cents": interval.totals.expense_cents,
        "days": [
            {
                "date": day.date.isoformat(),
                "transactions": [_row_payload(row) for row in day.transactions],
            }
            for day in interval.days
        ],
        "summary": _summary_payload(interval.summary),
    }


def _link_payload(view: TransactionsView, link: Optional[RangeNavLink]):
    if link is None:
        return None
    query = TransactionsQuery(
        view.state.range_preset, view.state.interval_preset, link.anchor, view.summary
    )
    return {"range": _range_payload(link.range), "href": query.to_url(TRANSACTIONS_ROUTE)}


def _tag_stat_payload(stat: TagStat) -> dict[str, object]:
    def _cents(value):
        return None if value is None else round_half_up(value)

    def _percent(value):
        if value is None:
            return None
        return str(value.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))

    return {
        "tag_id": stat.tag_id,
        "tag": stat.tag,
        "amount_cents": stat.target_amount_cents,
        "percentage_of_total": stat.percentage_of_total,
        "monthly_average_cents": _cents(stat.monthly_average_cents),
        "percentage_change": _percent(stat.percentage_change),
        "displayed_change": stat.displayed_change,
        "annual_delta_cents": _cents(stat.annual_delta_cents),
        "months_of_data": stat.months_of_data,
        "state": stat.state.value,
    }


@app.get("/api/transactions")
def api_transactions(request: Request, db: Session = Depends(get_db)):
    params = request.query_params
    try:
        nav = parse_navigation(
            params.get("range"),
            params.get("interval"),
            params.get("anchor"),
            _parse_bool(params.get("summary")),
            today=local_today(),
        )
        state = resolve(nav.range_preset, nav.interval_preset, nav.anchor)
        if state.redirected:
            query = TransactionsQuery(
                state.range_preset, state.interval_preset, state.anchor, nav.summary
            )
            logger.info(
                f"range_upgraded: requested={nav.range_preset.value} "
                f"resolved={state.range_preset.value}"
            )
            return RedirectResponse(
                url=query.to_url(TRANSACTIONS_ROUTE), status_code=303
            )
        view = TransactionsViewService(db).build(nav)
    except InvalidNavigation as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    return {
        "range": view.state.range_preset.value,
        "interval": view.state.interval_preset.value,
        "anchor": view.state.anchor.isoformat(),
        "summary": view.summary,
        "current": _range_payload(view.state.date_range),
        "prev": _link_payload(view, view.navigation.prev),
        "next": _link_payload(view, view.navigation.next),
        "latest": _link_payload(view, view.latest),
        "range_options": [
            {"value": option.preset.value, "enabled": option.enabled}
            for option in view.options
        ],
        "excluded_tag_ids": view.excluded_tag_ids,
        "has_any_transactions": view.has_any_transactions,
        "empty_state": view.empty_state,
        "intervals": [_interval_payload(interval) for interval in view.intervals],
    }


@app.post("/api/transactions", status_code=201)
def api_create_transaction(data: TransactionIn, db: Session = Depends(get_db)):
    try:
        txn = TransactionService(db).create(data)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return {"id": txn.id}


@app.put("/api/transactions/{transaction_id}/tag")
def api_set_transaction_tag(
    transaction_id: int, data: TransactionTagIn, db: Session = Depends(get_db)
):
    try:
        txn = TransactionService(db).set_tag(transaction_id, data.tag_id)
    except TransactionNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except TagNotFound as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return {"id": txn.id, "tag_id": txn.tag_id}


@app.delete("/api/transactions/{transaction_id}", status_code=204)
def api_delete_transaction(transaction_id: int, db: Session = Depends(get_db)):
    try:
        TransactionService(db).delete(transaction_id)
    except TransactionNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@app.get("/api/dashboard")
def api_dashboard(request: Request, db: Session = Depends(get_db)):
    today = _parse_date(request.query_params.get("today"), "today") or local_today()
    data = DashboardService(db).build(today)
    if data is None:
        return {"has_data": False}
    return {
        "has_data": True,
        "window": _range_payload(data.window),
        "displayed_month": data.displayed_month.isoformat(),
        "excluded_tag_ids": data.excluded_tag_ids,
        "tag_stats": [_tag_stat_payload(stat) for stat in data.tag_stats],
        "monthly_totals": data.monthly_totals,
        "expenses_by_tag": {
            "months": [month.isoformat() for month in data.months],
            "series": [
                {"tag": label, "values": values}
                for label, values in data.expenses_by_tag
            ],
        },
    }


@app.get("/api/tags")
def api_tags(db: Session = Depends(get_db)):
    return [{"id": tag.id, "name": tag.name} for tag in TagService(db).list_all()]


@app.post("/api/tags", status_code=201)
def api_create_tag(data: TagIn, db: Session = Depends(get_db)):
    try:
        tag = TagService(db).create(data)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return {"id": tag.id, "name": tag.name}


@app.patch("/api/tags/{tag_id}")
def api_rename_tag(tag_id: int, data: TagIn, db: Session = Depends(get_db)):
    try:
        tag = TagService(db).rename(tag_id, data)
    except TagNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return {"id": tag.id, "name": tag.name}


@app.delete("/api/tags/{tag_id}", status_code=204)
def api_delete_tag(tag_id: int, db: Session = Depends(get_db)):
    try:
        TagService(db).delete(tag_id)
    except TagNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@app.get("/api/excluded-tags/{scope}")
def api_excluded_tags(scope: str, db: Session = Depends(get_db)):
    return ExclusionService(db).tags_with_status(_parse_scope(scope))


@app.put("/api/excluded-tags/{scope}")
def api_save_excluded_tags(
    scope: str, data: ExcludedTagsIn, db: Session = Depends(get_db)
):
    exclusion_scope = _parse_scope(scope)
    try:
        saved = ExclusionService(db).save(exclusion_scope, data.excluded_tag_ids)
    except TagNotFound as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return {"scope": exclusion_scope.value, "excluded_tag_ids": saved}
