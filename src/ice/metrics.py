"""
Read-side KPIs over stored hours and articles.

Low-view articles never count. Rates are per worked hour and are None when
there are no hours to divide by. Articles without an employee count towards
global totals and time series, never towards a single employee.
"""
from datetime import date, datetime, time, timedelta, timezone
from typing import List, Literal, Optional, Sequence, Tuple
import pandas as pd
from pydantic import BaseModel, Field
from sqlmodel import Session, col, select
from ice.models.employee import Employee
from ice.models.records import Article, DailyHours

RankingMetric = Literal["hours", "articles", "views", "efficiency"]
Granularity = Literal["day", "week", "month"]

# Sunday first, as on the newsroom's calendar
DAY_NAMES = ["Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday"]


class MetricsFilter(BaseModel):
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    employee_ids: List[int] = Field(default_factory=list)


class EmployeeMetrics(BaseModel):
    employee_id: int
    employee_name: str
    total_articles: int
    total_views: int
    total_hours: float
    avg_views_per_article: Optional[int] = None
    rate_articles_per_hour: Optional[float] = None
    efficiency_views_per_hour: Optional[int] = None


class GlobalMetrics(BaseModel):
    total_articles: int
    total_views: int
    total_hours: float
    avg_rate: Optional[float] = None
    avg_efficiency: Optional[float] = None


class EmployeeRanking(BaseModel):
    employee_id: int
    employee_name: str
    rank: int
    metric_name: RankingMetric
    metric_value: float
    percentile: int


class TopArticle(BaseModel):
    article_id: int
    title: str
    views: int
    published_at: datetime
    employee_name: str = "-"


class HoursPeriod(BaseModel):
    period: str
    total_hours: float
    employee_count: int
    avg_hours_per_employee: float


class ArticlesPeriod(BaseModel):
    period: str
    total_articles: int
    total_views: int
    employee_count: int
    avg_articles_per_employee: float


class WeekdayHours(BaseModel):
    day_of_week: int  # 0 = Sunday
    day_name: str
    total_hours: float
    avg_hours: float
    employee_count: int


class DataGap(BaseModel):
    employee_id: int
    employee_name: str
    gap_type: Literal["hours_only", "articles_only"]
    hours_count: int
    articles_count: int

    @property
    def details(self) -> str:
        if self.gap_type == "hours_only":
            return f"{self.hours_count} hours records but no articles"
        return f"{self.articles_count} articles but no hours"


class HoursAnomaly(BaseModel):
    employee_id: int
    employee_name: str
    type: Literal["hours_spike", "hours_drop"]
    day: date
    value: float
    expected_value: float
    deviation_percent: int
    severity: Literal["low", "medium", "high"]


class TrendComparison(BaseModel):
    metric: str
    current_value: float
    previous_value: float
    change_percent: int
    trend: Literal["up", "down", "stable"]


def safe_divide(numerator: float, denominator: float) -> Optional[float]:
    if not denominator:
        return None
    return numerator / denominator


def _day_start(d: date) -> datetime:
    return datetime.combine(d, time.min, tzinfo=timezone.utc)


def _frame(session: Session, stmt, dtypes: dict) -> pd.DataFrame:
    rows = [tuple(r) for r in session.exec(stmt).all()]
    return pd.DataFrame(rows, columns=list(dtypes)).astype(dtypes)


def _filter_articles(stmt, filters: MetricsFilter):
    stmt = stmt.where(Article.is_low_views == False)  # noqa: E712
    if filters.start_date:
        stmt = stmt.where(Article.published_at >= _day_start(filters.start_date))
    if filters.end_date:
        # inclusive of the whole end day
        stmt = stmt.where(Article.published_at < _day_start(filters.end_date + timedelta(days=1)))
    if filters.employee_ids:
        stmt = stmt.where(col(Article.employee_id).in_(filters.employee_ids))
    return stmt


def _articles_frame(session: Session, filters: MetricsFilter) -> pd.DataFrame:
    stmt = _filter_articles(select(Article.employee_id, Article.views, Article.published_at), filters)
    df = _frame(session, stmt, {"employee_id": "Int64", "views": "int64", "published_at": "object"})
    df["published_at"] = pd.to_datetime(df["published_at"], utc=True)
    return df


def _hours_frame(session: Session, filters: MetricsFilter) -> pd.DataFrame:
    stmt = select(DailyHours.employee_id, DailyHours.date, DailyHours.hours)
    if filters.start_date:
        stmt = stmt.where(DailyHours.date >= filters.start_date)
    if filters.end_date:
        stmt = stmt.where(DailyHours.date <= filters.end_date)
    if filters.employee_ids:
        stmt = stmt.where(col(DailyHours.employee_id).in_(filters.employee_ids))
    df = _frame(session, stmt, {"employee_id": "int64", "date": "object", "hours": "float64"})
    df["date"] = pd.to_datetime(df["date"])
    return df


def _employees_frame(session: Session, filters: MetricsFilter) -> pd.DataFrame:
    stmt = select(Employee.id, Employee.canonical_name)
    if filters.employee_ids:
        stmt = stmt.where(col(Employee.id).in_(filters.employee_ids))
    return _frame(session, stmt, {"employee_id": "int64", "employee_name": "object"})


def _owned(articles: pd.DataFrame) -> pd.DataFrame:
    return articles.dropna(subset=["employee_id"]).astype({"employee_id": "int64"})


def global_metrics(session: Session, filters: Optional[MetricsFilter] = None) -> GlobalMetrics:
    filters = filters or MetricsFilter()
    articles = _articles_frame(session, filters)
    hours = _hours_frame(session, filters)

    total_articles = len(articles)
    total_views = int(articles["views"].sum()) if total_articles else 0
    total_hours = float(hours["hours"].sum()) if len(hours) else 0.0

    return GlobalMetrics(
        total_articles=total_articles,
        total_views=total_views,
        total_hours=total_hours,
        avg_rate=safe_divide(total_articles, total_hours),
        avg_efficiency=safe_divide(total_views, total_hours),
    )


def employee_metrics(session: Session, filters: Optional[MetricsFilter] = None) -> List[EmployeeMetrics]:
    """Per-employee totals, sorted by efficiency (highest first, None last)."""
    filters = filters or MetricsFilter()

    employees = _employees_frame(session, filters)
    if employees.empty:
        return []

    articles = (
        _owned(_articles_frame(session, filters))
        .groupby("employee_id")
        .agg(total_articles=("views", "size"), total_views=("views", "sum"))
        .reset_index()
    )
    hours = (
        _hours_frame(session, filters)
        .groupby("employee_id")
        .agg(total_hours=("hours", "sum"))
        .reset_index()
    )

    df = employees.merge(articles, on="employee_id", how="left").merge(hours, on="employee_id", how="left")
    df[["total_articles", "total_views", "total_hours"]] = (
        df[["total_articles", "total_views", "total_hours"]].fillna(0)
    )

    metrics = []
    for row in df.itertuples(index=False):
        n_articles = int(row.total_articles)
        n_views = int(row.total_views)
        n_hours = float(row.total_hours)
        rate = safe_divide(n_articles, n_hours)
        efficiency = safe_divide(n_views, n_hours)
        metrics.append(EmployeeMetrics(
            employee_id=int(row.employee_id),
            employee_name=row.employee_name,
            total_articles=n_articles,
            total_views=n_views,
            total_hours=round(n_hours, 2),
            avg_views_per_article=round(n_views / n_articles) if n_articles else None,
            rate_articles_per_hour=round(rate, 2) if rate is not None else None,
            efficiency_views_per_hour=round(efficiency) if efficiency is not None else None,
        ))

    metrics.sort(key=lambda m: (m.efficiency_views_per_hour is None, -(m.efficiency_views_per_hour or 0)))
    return metrics


def _metric_value(m: EmployeeMetrics, metric: RankingMetric) -> float:
    if metric == "hours":
        return m.total_hours
    if metric == "articles":
        return m.total_articles
    if metric == "views":
        return m.total_views
    return m.efficiency_views_per_hour or 0


def rank_employees(metrics: Sequence[EmployeeMetrics], metric: RankingMetric = "efficiency") -> List[EmployeeRanking]:
    ranked = sorted(metrics, key=lambda m: -_metric_value(m, metric))
    n = len(ranked)
    return [
        EmployeeRanking(
            employee_id=m.employee_id,
            employee_name=m.employee_name,
            rank=i + 1,
            metric_name=metric,
            metric_value=_metric_value(m, metric),
            percentile=round((1 - i / (n - 1)) * 100) if n > 1 else 100,
        )
        for i, m in enumerate(ranked)
    ]


def employee_rankings(
    session: Session,
    metric: RankingMetric = "efficiency",
    filters: Optional[MetricsFilter] = None,
) -> List[EmployeeRanking]:
    return rank_employees(employee_metrics(session, filters), metric)


def top_articles(session: Session, filters: Optional[MetricsFilter] = None, limit: int = 5) -> List[TopArticle]:
    """Most viewed articles in the window, with the author's name ("-" when unowned)."""
    filters = filters or MetricsFilter()
    stmt = _filter_articles(
        select(Article, Employee.canonical_name).join(Employee, isouter=True),
        filters,
    ).order_by(col(Article.views).desc(), Article.article_id).limit(limit)
    return [
        TopArticle(
            article_id=article.article_id,
            title=article.title,
            views=article.views,
            published_at=article.published_at,
            employee_name=name or "-",
        )
        for article, name in session.exec(stmt).all()
    ]


def _period(stamps: pd.Series, granularity: Granularity) -> pd.Series:
    if granularity == "day":
        return stamps.dt.strftime("%Y-%m-%d")
    if granularity == "month":
        return stamps.dt.strftime("%Y-%m")
    iso = stamps.dt.isocalendar()
    return iso["year"].astype(str) + "-W" + iso["week"].astype(str).str.zfill(2)


def hours_time_series(
    session: Session,
    filters: Optional[MetricsFilter] = None,
    granularity: Granularity = "month",
) -> List[HoursPeriod]:
    hours = _hours_frame(session, filters or MetricsFilter())
    if hours.empty:
        return []
    hours["period"] = _period(hours["date"], granularity)
    grouped = (
        hours.groupby("period")
        .agg(total_hours=("hours", "sum"), employee_count=("employee_id", "nunique"))
        .reset_index()
        .sort_values("period")
    )
    return [
        HoursPeriod(
            period=row.period,
            total_hours=round(float(row.total_hours), 2),
            employee_count=int(row.employee_count),
            avg_hours_per_employee=round(float(row.total_hours) / row.employee_count, 2),
        )
        for row in grouped.itertuples(index=False)
    ]


def articles_time_series(
    session: Session,
    filters: Optional[MetricsFilter] = None,
    granularity: Granularity = "month",
) -> List[ArticlesPeriod]:
    articles = _articles_frame(session, filters or MetricsFilter())
    if articles.empty:
        return []
    articles["period"] = _period(articles["published_at"], granularity)
    grouped = (
        articles.groupby("period")
        .agg(
            total_articles=("views", "size"),
            total_views=("views", "sum"),
            employee_count=("employee_id", "nunique"),
        )
        .reset_index()
        .sort_values("period")
    )
    return [
        ArticlesPeriod(
            period=row.period,
            total_articles=int(row.total_articles),
            total_views=int(row.total_views),
            employee_count=int(row.employee_count),
            avg_articles_per_employee=(
                round(row.total_articles / row.employee_count, 2) if row.employee_count else 0.0
            ),
        )
        for row in grouped.itertuples(index=False)
    ]


def weekday_breakdown(session: Session, filters: Optional[MetricsFilter] = None) -> List[WeekdayHours]:
    """Hours per day of the week, Sunday first; days without records are zero."""
    hours = _hours_frame(session, filters or MetricsFilter())
    # pandas counts Monday as 0
    hours["day_of_week"] = (hours["date"].dt.dayofweek + 1) % 7
    grouped = hours.groupby("day_of_week").agg(
        total_hours=("hours", "sum"),
        count=("hours", "size"),
        employee_count=("employee_id", "nunique"),
    )

    out = []
    for day, name in enumerate(DAY_NAMES):
        if day in grouped.index:
            row = grouped.loc[day]
            total, count, staff = float(row["total_hours"]), int(row["count"]), int(row["employee_count"])
        else:
            total, count, staff = 0.0, 0, 0
        out.append(WeekdayHours(
            day_of_week=day,
            day_name=name,
            total_hours=round(total, 2),
            avg_hours=round(total / count, 2) if count else 0.0,
            employee_count=staff,
        ))
    return out


def detect_missing_data(session: Session, filters: Optional[MetricsFilter] = None) -> List[DataGap]:
    """Employees with hours but no counted articles in the window, or the other way round."""
    filters = filters or MetricsFilter()
    employees = _employees_frame(session, filters)
    hours_counts = _hours_frame(session, filters).groupby("employee_id").size()
    article_counts = _owned(_articles_frame(session, filters)).groupby("employee_id").size()

    gaps = []
    for row in employees.itertuples(index=False):
        n_hours = int(hours_counts.get(row.employee_id, 0))
        n_articles = int(article_counts.get(row.employee_id, 0))
        if n_hours and not n_articles:
            gap_type = "hours_only"
        elif n_articles and not n_hours:
            gap_type = "articles_only"
        else:
            continue
        gaps.append(DataGap(
            employee_id=int(row.employee_id),
            employee_name=row.employee_name,
            gap_type=gap_type,
            hours_count=n_hours,
            articles_count=n_articles,
        ))
    return sorted(gaps, key=lambda g: g.employee_name)


def detect_anomalies(
    session: Session,
    filters: Optional[MetricsFilter] = None,
    threshold_std: float = 2.0,
    min_records: int = 5,
) -> List[HoursAnomaly]:
    """Daily hours more than ``threshold_std`` standard deviations from the employee's mean.

    Employees with fewer than ``min_records`` days, or with identical values
    every day, are not scored.
    """
    filters = filters or MetricsFilter()
    names = _employees_frame(session, filters).set_index("employee_id")["employee_name"]
    hours = _hours_frame(session, filters)

    anomalies = []
    for employee_id, group in hours.groupby("employee_id"):
        if len(group) < min_records:
            continue
        mean = group["hours"].mean()
        std = group["hours"].std(ddof=0)
        if std == 0:
            continue
        deviation = (group["hours"] - mean).abs()
        for row, dev in zip(group.itertuples(index=False), deviation):
            if dev <= threshold_std * std:
                continue
            percent = round(dev / mean * 100) if mean > 0 else 100
            anomalies.append(HoursAnomaly(
                employee_id=int(employee_id),
                employee_name=names.get(employee_id, "-"),
                type="hours_spike" if row.hours > mean else "hours_drop",
                day=row.date.date(),
                value=round(float(row.hours), 2),
                expected_value=round(float(mean), 2),
                deviation_percent=percent,
                severity="high" if percent > 100 else "medium" if percent > 50 else "low",
            ))

    order = {"high": 0, "medium": 1, "low": 2}
    return sorted(anomalies, key=lambda a: (order[a.severity], -a.deviation_percent))


def trend_analysis(
    session: Session,
    current: Tuple[date, date],
    previous: Tuple[date, date],
    employee_ids: Sequence[int] = (),
) -> List[TrendComparison]:
    """Compare global totals of two date windows; a move beyond 5% is a trend."""
    now = global_metrics(session, MetricsFilter(
        start_date=current[0], end_date=current[1], employee_ids=list(employee_ids)
    ))
    before = global_metrics(session, MetricsFilter(
        start_date=previous[0], end_date=previous[1], employee_ids=list(employee_ids)
    ))

    trends = []
    for name, cur, prev in (
        ("total_articles", now.total_articles, before.total_articles),
        ("total_views", now.total_views, before.total_views),
        ("total_hours", now.total_hours, before.total_hours),
        ("avg_efficiency", now.avg_efficiency or 0, before.avg_efficiency or 0),
    ):
        if prev > 0:
            change = round((cur - prev) / prev * 100)
        else:
            change = 100 if cur > 0 else 0
        trends.append(TrendComparison(
            metric=name,
            current_value=cur,
            previous_value=prev,
            change_percent=change,
            trend="up" if change > 5 else "down" if change < -5 else "stable",
        ))
    return trends
