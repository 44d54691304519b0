"""Read-only weighing reports over live (non-tombstoned) tickets.

Periods are whole UTC days, bounded by ticket ``created_at``; ``to_date`` is inclusive.
Weights and amounts are summed over completed tickets only.
"""

from collections import defaultdict
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional

from sqlalchemy.orm import Session

from weighsync import store
from weighsync.models import Customer, Product, Vehicle, WeighingTicket
from weighsync.schemas import (
    CustomerRecord,
    CustomerReport,
    DailySummary,
    DailyTotals,
    RankedTotals,
    ReportPeriod,
    Statistics,
    StatisticsOverview,
    TicketTotals,
    WeighingTicketRecord,
    as_utc,
)
from weighsync.sync import record_from_row

RECENT_TICKETS = 20
TOP_LIMIT = 10
DEFAULT_PERIOD_DAYS = 30


def _day_start(day: date) -> datetime:
    return datetime.combine(day, time.min, tzinfo=timezone.utc)


def default_period(today: date) -> tuple[date, date]:
    return today - timedelta(days=DEFAULT_PERIOD_DAYS), today


def _live_tickets(
    db: Session, from_date: date, to_date: date, customer_id: Optional[str] = None
) -> list[WeighingTicket]:
    query = db.query(WeighingTicket).filter(
        WeighingTicket.is_deleted.is_(False),
        WeighingTicket.created_at >= _day_start(from_date),
        WeighingTicket.created_at < _day_start(to_date + timedelta(days=1)),
    )
    if customer_id is not None:
        query = query.filter(WeighingTicket.customer_id == customer_id)
    return query.order_by(WeighingTicket.created_at.desc(), WeighingTicket.id).all()


def _completed(tickets: list[WeighingTicket]) -> list[WeighingTicket]:
    return [ticket for ticket in tickets if ticket.status == "completed"]


def _totals(tickets: list[WeighingTicket]) -> dict:
    completed = _completed(tickets)
    return {
        "total_tickets": len(tickets),
        "completed_tickets": len(completed),
        "total_net_weight": sum(ticket.net_weight for ticket in completed),
        "total_amount": sum(ticket.total_amount or 0 for ticket in completed),
    }


def _ranked(tickets: list[WeighingTicket], attr: str) -> list[RankedTotals]:
    groups: dict[str, list[WeighingTicket]] = defaultdict(list)
    for ticket in _completed(tickets):
        name = getattr(ticket, attr)
        if name:
            groups[name].append(ticket)
    ranked = [
        RankedTotals(
            name=name,
            ticket_count=len(group),
            total_weight=sum(ticket.net_weight for ticket in group),
            total_amount=sum(ticket.total_amount or 0 for ticket in group),
        )
        for name, group in groups.items()
    ]
    ranked.sort(key=lambda row: (-row.total_weight, row.name))
    return ranked[:TOP_LIMIT]


def _records(tickets: list[WeighingTicket]) -> list[WeighingTicketRecord]:
    return [record_from_row(WeighingTicketRecord, ticket) for ticket in tickets[:RECENT_TICKETS]]


def _live_count(db: Session, model) -> int:
    return db.query(model).filter(model.is_deleted.is_(False)).count()


def daily_summary(db: Session, day: date) -> DailySummary:
    tickets = _live_tickets(db, day, day)
    completed = _completed(tickets)
    totals = _totals(tickets)
    return DailySummary(
        day=day,
        pending_tickets=sum(1 for ticket in tickets if ticket.status == "pending"),
        cancelled_tickets=sum(1 for ticket in tickets if ticket.status == "cancelled"),
        average_weight=totals["total_net_weight"] / len(completed) if completed else 0,
        tickets=_records(tickets),
        **totals,
    )


def statistics(db: Session, from_date: date, to_date: date) -> Statistics:
    tickets = _live_tickets(db, from_date, to_date)
    by_day: dict[date, list[WeighingTicket]] = defaultdict(list)
    for ticket in _completed(tickets):
        by_day[as_utc(ticket.created_at).date()].append(ticket)
    daily_stats = [
        DailyTotals(
            day=day,
            count=len(group),
            total_weight=sum(ticket.net_weight for ticket in group),
            total_amount=sum(ticket.total_amount or 0 for ticket in group),
        )
        for day, group in sorted(by_day.items())
    ]
    overview = StatisticsOverview(
        total_customers=_live_count(db, Customer),
        total_vehicles=_live_count(db, Vehicle),
        total_products=_live_count(db, Product),
        **_totals(tickets),
    )
    return Statistics(
        period=ReportPeriod(from_date=from_date, to_date=to_date),
        overview=overview,
        daily_stats=daily_stats,
        top_customers=_ranked(tickets, "customer_name"),
        top_products=_ranked(tickets, "product_name"),
    )


def customer_report(db: Session, customer_id: str, from_date: date, to_date: date) -> Optional[CustomerReport]:
    customer = store.get_by_id(db, Customer, customer_id)
    if customer is None:
        return None
    tickets = _live_tickets(db, from_date, to_date, customer_id)
    return CustomerReport(
        customer=record_from_row(CustomerRecord, customer),
        period=ReportPeriod(from_date=from_date, to_date=to_date),
        summary=TicketTotals(**_totals(tickets)),
        recent_tickets=_records(tickets),
    )
