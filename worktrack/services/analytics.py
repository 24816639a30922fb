"""Aggregation engine for productivity and earnings analytics.

Every function here is pure: inputs are collections already loaded and
authorized by the caller, nothing is mutated, and time-dependent results take
an explicit reference time instead of reading the clock. Empty input never
raises; ratios and averages degrade to zero.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from uuid import UUID

from worktrack.core.clock import as_utc_naive
from worktrack.models.entities import FinanceType, Project, ProjectFinance, ProjectMember, Task, User, UserFinance

ZERO = Decimal("0.00")
Q2 = Decimal("0.01")
HUNDRED = Decimal("100")

MONTHS_PER_YEAR = 12
DAYS_PER_WEEK = 7
WEEKLY_BUCKETS = 4
ACTIVE_USERS_LIMIT = 5
OVERDUE_PROJECTS_LIMIT = 5
TOP_PROJECTS_LIMIT = 5
RECENT_ACTIVITY_LIMIT = 10
ACTIVITY_SOURCE_LIMIT = 5


def q2(value: Decimal) -> Decimal:
    return value.quantize(Q2)


def percent(part: int, whole: int) -> int:
    """Whole-number percentage rounded half up; 0 for an empty whole."""

    if whole <= 0:
        return 0
    ratio = Decimal(part) * HUNDRED / Decimal(whole)
    return int(ratio.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def completion_rate(tasks: Iterable[Task]) -> int:
    total = 0
    completed = 0
    for task in tasks:
        total += 1
        if task.completed:
            completed += 1
    return percent(completed, total)


# ---------- Task rollups ----------
@dataclass(frozen=True, slots=True)
class CompletionBucket:
    label: str
    total: int
    completed: int
    rate: int


@dataclass(frozen=True, slots=True)
class DayWorkload:
    day: int
    total: int
    completed: int


def weekly_completion_series(tasks: Iterable[Task], *, now: datetime) -> list[CompletionBucket]:
    """Completion rate of tasks created in each of the last four 7-day windows.

    Windows are anchored at ``now`` and emitted oldest first; window ``i``
    (3..0) covers ``[now - (7i + 7) days, now - 7i days)``.
    """

    reference = as_utc_naive(now)
    created = [(as_utc_naive(task.created_at), bool(task.completed)) for task in tasks]

    series: list[CompletionBucket] = []
    for offset in range(WEEKLY_BUCKETS - 1, -1, -1):
        window_start = reference - timedelta(days=offset * DAYS_PER_WEEK + DAYS_PER_WEEK)
        window_end = reference - timedelta(days=offset * DAYS_PER_WEEK)
        in_window = [done for created_at, done in created if window_start <= created_at < window_end]
        completed = sum(1 for done in in_window if done)
        series.append(
            CompletionBucket(
                label=f"Week {WEEKLY_BUCKETS - offset}",
                total=len(in_window),
                completed=completed,
                rate=percent(completed, len(in_window)),
            )
        )
    return series


def tasks_by_day(tasks: Iterable[Task]) -> list[DayWorkload]:
    totals = [0] * DAYS_PER_WEEK
    completed = [0] * DAYS_PER_WEEK
    for task in tasks:
        if not 0 <= task.day_of_week < DAYS_PER_WEEK:
            continue
        totals[task.day_of_week] += 1
        if task.completed:
            completed[task.day_of_week] += 1
    return [
        DayWorkload(day=day, total=totals[day], completed=completed[day])
        for day in range(DAYS_PER_WEEK)
    ]


def completion_streak(tasks: Iterable[Task], *, today: date) -> int:
    """Consecutive days, ending today, with at least one task completed that day.

    The completion day of a task is the date of its last update (creation when
    it was never updated). The walk is bounded by the earliest completion day.
    """

    completion_days: set[date] = set()
    for task in tasks:
        if not task.completed:
            continue
        stamp = task.updated_at or task.created_at
        completion_days.add(as_utc_naive(stamp).date())

    if not completion_days:
        return 0

    max_days = (today - min(completion_days)).days + 1
    streak = 0
    while streak < max_days and today - timedelta(days=streak) in completion_days:
        streak += 1
    return streak


# ---------- Weekly focus ----------
@dataclass(frozen=True, slots=True)
class FocusTask:
    task_id: UUID
    title: str
    day_of_week: int
    project_id: UUID
    project_name: str


def current_week_start(now: datetime) -> datetime:
    """Midnight of the Monday that opens the calendar week containing ``now``."""

    reference = as_utc_naive(now)
    monday = reference - timedelta(days=reference.weekday())
    return monday.replace(hour=0, minute=0, second=0, microsecond=0)


def week_focus_tasks(
    tasks: Iterable[Task],
    project_names: Mapping[UUID, str],
    *,
    now: datetime,
) -> list[FocusTask]:
    """Open tasks of the current week scheduled for today or tomorrow."""

    reference = as_utc_naive(now)
    week_start = current_week_start(reference)
    week_end = week_start + timedelta(days=DAYS_PER_WEEK)
    today_day = reference.weekday()
    focus_days = {today_day, (today_day + 1) % DAYS_PER_WEEK}

    selected: list[FocusTask] = []
    for task in tasks:
        if task.completed or task.day_of_week not in focus_days:
            continue
        created_at = as_utc_naive(task.created_at)
        if not week_start <= created_at < week_end:
            continue
        selected.append(
            FocusTask(
                task_id=task.id,
                title=task.title,
                day_of_week=task.day_of_week,
                project_id=task.project_id,
                project_name=project_names.get(task.project_id, ""),
            )
        )
    return selected


def one_per_project(items: Iterable[FocusTask]) -> list[FocusTask]:
    seen: set[UUID] = set()
    unique: list[FocusTask] = []
    for item in items:
        if item.project_id in seen:
            continue
        seen.add(item.project_id)
        unique.append(item)
    return unique


# ---------- Earnings ----------
@dataclass(frozen=True, slots=True)
class MonthlyEarnings:
    month: int
    salary: Decimal
    bonuses: Decimal
    total: Decimal


@dataclass(frozen=True, slots=True)
class ProjectEarnings:
    project_id: UUID
    project_name: str
    total_bonuses: Decimal
    count: int


@dataclass(frozen=True, slots=True)
class EarningsTotals:
    total: Decimal
    this_month: Decimal
    this_year: Decimal
    average_monthly: Decimal
    total_bonuses: Decimal


def monthly_breakdown(entries: Iterable[UserFinance], *, year: int) -> list[MonthlyEarnings]:
    """Salary, bonuses and total for each month 1..12 of ``year``."""

    salaries: dict[int, Decimal] = {}
    bonuses = {month: ZERO for month in range(1, MONTHS_PER_YEAR + 1)}
    for entry in entries:
        if entry.year != year or entry.month not in bonuses:
            continue
        if entry.type == FinanceType.SALARY:
            # At most one salary per month; the first one seen is authoritative.
            salaries.setdefault(entry.month, entry.amount)
        elif entry.type == FinanceType.BONUS:
            bonuses[entry.month] += entry.amount

    breakdown: list[MonthlyEarnings] = []
    for month in range(1, MONTHS_PER_YEAR + 1):
        salary = q2(salaries.get(month, ZERO))
        month_bonuses = q2(bonuses[month])
        breakdown.append(
            MonthlyEarnings(
                month=month,
                salary=salary,
                bonuses=month_bonuses,
                total=q2(salary + month_bonuses),
            )
        )
    return breakdown


def best_month(breakdown: Sequence[MonthlyEarnings]) -> MonthlyEarnings | None:
    """Month with the highest total; the earliest month wins ties."""

    best: MonthlyEarnings | None = None
    for row in breakdown:
        if best is None or row.total > best.total:
            best = row
    return best


def earnings_by_project(
    entries: Iterable[UserFinance],
    project_names: Mapping[UUID, str],
) -> list[ProjectEarnings]:
    """Bonus totals per referenced project, highest first.

    Entries pointing at projects missing from ``project_names`` are skipped.
    """

    totals: dict[UUID, Decimal] = {}
    counts: dict[UUID, int] = {}
    for entry in entries:
        if entry.type != FinanceType.BONUS or entry.project_id is None:
            continue
        if entry.project_id not in project_names:
            continue
        totals[entry.project_id] = totals.get(entry.project_id, ZERO) + entry.amount
        counts[entry.project_id] = counts.get(entry.project_id, 0) + 1

    rows = [
        ProjectEarnings(
            project_id=project_id,
            project_name=project_names[project_id],
            total_bonuses=q2(total),
            count=counts[project_id],
        )
        for project_id, total in totals.items()
    ]
    return sorted(rows, key=lambda row: row.total_bonuses, reverse=True)


def earnings_totals(entries: Iterable[UserFinance], *, year: int, today: date) -> EarningsTotals:
    """Overall, current-month and selected-year sums.

    ``average_monthly`` divides the selected-year sum by twelve regardless of
    how many months carry entries.
    """

    total = ZERO
    this_month = ZERO
    this_year = ZERO
    total_bonuses = ZERO
    for entry in entries:
        total += entry.amount
        if entry.month == today.month and entry.year == today.year:
            this_month += entry.amount
        if entry.year == year:
            this_year += entry.amount
        if entry.type == FinanceType.BONUS:
            total_bonuses += entry.amount

    return EarningsTotals(
        total=q2(total),
        this_month=q2(this_month),
        this_year=q2(this_year),
        average_monthly=q2(this_year / MONTHS_PER_YEAR),
        total_bonuses=q2(total_bonuses),
    )


# ---------- Rankings ----------
@dataclass(frozen=True, slots=True)
class UserActivity:
    user_id: UUID
    display_name: str
    email: str
    completed_tasks: int
    total_projects: int


@dataclass(frozen=True, slots=True)
class RankedProject:
    project: Project
    task_count: int


def most_active_users(
    users: Sequence[User],
    projects: Iterable[Project],
    memberships: Iterable[ProjectMember],
    tasks: Iterable[Task],
    *,
    limit: int = ACTIVE_USERS_LIMIT,
) -> list[UserActivity]:
    """Users ranked by completed tasks across owned and member projects.

    Ties keep the order of ``users``.
    """

    owned: dict[UUID, set[UUID]] = {}
    for project in projects:
        owned.setdefault(project.user_id, set()).add(project.id)
    member_of: dict[UUID, set[UUID]] = {}
    for membership in memberships:
        member_of.setdefault(membership.user_id, set()).add(membership.project_id)
    completed_per_project = Counter(task.project_id for task in tasks if task.completed)

    rows: list[UserActivity] = []
    for user in users:
        owned_ids = owned.get(user.id, set())
        member_ids = member_of.get(user.id, set())
        rows.append(
            UserActivity(
                user_id=user.id,
                display_name=user.display_name,
                email=user.email,
                completed_tasks=sum(completed_per_project[pid] for pid in owned_ids | member_ids),
                total_projects=len(owned_ids | member_ids),
            )
        )
    return sorted(rows, key=lambda row: row.completed_tasks, reverse=True)[:limit]


def top_projects_by_task_count(
    projects: Sequence[Project],
    tasks: Iterable[Task],
    *,
    limit: int = TOP_PROJECTS_LIMIT,
) -> list[RankedProject]:
    task_counts = Counter(task.project_id for task in tasks)
    ranked = [RankedProject(project=project, task_count=task_counts[project.id]) for project in projects]
    return sorted(ranked, key=lambda row: row.task_count, reverse=True)[:limit]


def overdue_projects(
    projects: Iterable[Project],
    *,
    now: datetime,
    limit: int = OVERDUE_PROJECTS_LIMIT,
) -> list[Project]:
    """Incomplete projects whose end date has passed, earliest deadline first."""

    reference = as_utc_naive(now)
    overdue = [
        project
        for project in projects
        if not project.completed
        and project.end_date is not None
        and as_utc_naive(project.end_date) < reference
    ]
    overdue.sort(key=lambda project: as_utc_naive(project.end_date))
    return overdue[:limit]


# ---------- Activity ----------
@dataclass(frozen=True, slots=True)
class ActivityItem:
    kind: str
    timestamp: datetime
    subject: User | Project | Task


def recent_activity(
    users: Iterable[User],
    projects: Iterable[Project],
    completed_tasks: Iterable[Task],
    *,
    limit: int = RECENT_ACTIVITY_LIMIT,
    per_source: int = ACTIVITY_SOURCE_LIMIT,
) -> list[ActivityItem]:
    """Merged timeline of new users, new projects and completed tasks, newest first.

    Each source contributes at most ``per_source`` of its newest items before
    the merge, so a burst of sign-ups cannot crowd out projects and tasks.
    """

    def _newest(kind: str, rows: Iterable[User | Project | Task], stamp) -> list[ActivityItem]:
        items = [ActivityItem(kind=kind, timestamp=as_utc_naive(stamp(row)), subject=row) for row in rows]
        items.sort(key=lambda item: item.timestamp, reverse=True)
        return items[:per_source]

    merged = [
        *_newest("user", users, lambda user: user.created_at),
        *_newest("project", projects, lambda project: project.created_at),
        *_newest("task", completed_tasks, lambda task: task.updated_at or task.created_at),
    ]
    merged.sort(key=lambda item: item.timestamp, reverse=True)
    return merged[:limit]


# ---------- Profit ----------
@dataclass(frozen=True, slots=True)
class FinanceTotals:
    revenue: Decimal
    expense: Decimal
    profit: Decimal


def compute_profit(revenue: Decimal, expense: Decimal) -> Decimal:
    return q2(revenue - expense)


def project_finance_totals(records: Iterable[ProjectFinance]) -> FinanceTotals:
    revenue = ZERO
    expense = ZERO
    for record in records:
        revenue += record.revenue
        expense += record.expense
    return FinanceTotals(
        revenue=q2(revenue),
        expense=q2(expense),
        profit=compute_profit(revenue, expense),
    )
