import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, List, Optional, Protocol

from sqlalchemy import select
from sqlalchemy.orm import sessionmaker

from nashra.db.session import store_scope
from nashra.models import Company, PriceBar, User, UserAlert
from nashra.services.exceptions import StoreUnavailableError
from nashra.utils.timeutils import utcnow

logger = logging.getLogger(__name__)

EQ_TOLERANCE = 0.01
EDGE = "edge"
LEVEL = "level"


def evaluate_condition(operator: Optional[str], current_price: float, condition_value: float) -> bool:
    """gt / lt / eq (within one cent). Anything else never triggers."""
    if operator == "gt":
        return current_price > condition_value
    if operator == "lt":
        return current_price < condition_value
    if operator == "eq":
        return abs(current_price - condition_value) < EQ_TOLERANCE
    return False


@dataclass(frozen=True)
class AlertPolicy:
    """When a satisfied alert should notify.

    ``edge`` fires on the transition into the satisfied state; ``level`` fires
    on every evaluation while it holds. ``renotify_after`` adds a reminder for
    edge alerts that stay satisfied, and a cooldown for level alerts.
    """

    mode: str = EDGE
    renotify_after: Optional[timedelta] = None

    def __post_init__(self):
        if self.mode not in (EDGE, LEVEL):
            raise ValueError(f"Unknown alert trigger mode: {self.mode}")

    @classmethod
    def from_settings(cls, settings) -> "AlertPolicy":
        minutes = settings.ALERT_RENOTIFY_MINUTES
        return cls(
            mode=settings.ALERT_TRIGGER_MODE.lower(),
            renotify_after=timedelta(minutes=minutes) if minutes else None,
        )

    def _interval_elapsed(self, last_triggered_at: Optional[datetime], now: datetime) -> bool:
        if last_triggered_at is None:
            return True
        return now - last_triggered_at >= self.renotify_after

    def should_fire(self, satisfied: bool, was_satisfied: bool,
                    last_triggered_at: Optional[datetime], now: datetime) -> bool:
        if not satisfied:
            return False
        if self.mode == LEVEL:
            if self.renotify_after is None:
                return True
            return self._interval_elapsed(last_triggered_at, now)
        if not was_satisfied:
            return True
        if self.renotify_after is None:
            return False
        return self._interval_elapsed(last_triggered_at, now)


@dataclass
class AlertNotification:
    alert_id: int
    user_id: int
    email: str
    full_name: Optional[str]
    ticker: str
    company_name: str
    operator: str
    condition_value: float
    current_price: float


class Notifier(Protocol):
    def send(self, notification: AlertNotification) -> None: ...


class LoggingNotifier:
    """Default notifier until a mail service is wired in."""

    def send(self, notification: AlertNotification) -> None:
        logger.info(
            "Alert triggered for user %s: %s %s %s (price %s)",
            notification.email,
            notification.ticker,
            notification.operator,
            notification.condition_value,
            notification.current_price,
        )


@dataclass
class AlertRunResult:
    evaluated: int = 0
    triggered: int = 0
    errors: List[str] = field(default_factory=list)


class AlertEvaluator:
    def __init__(self, session_factory: sessionmaker, notifier: Optional[Notifier] = None,
                 policy: Optional[AlertPolicy] = None, clock: Callable[[], datetime] = utcnow):
        self.session_factory = session_factory
        self.notifier = notifier or LoggingNotifier()
        self.policy = policy or AlertPolicy()
        self._clock = clock

    def evaluate(self, alert_type: str = "price") -> AlertRunResult:
        result = AlertRunResult()
        try:
            self._evaluate_all(alert_type, result)
        except StoreUnavailableError as e:
            logger.error("Store unavailable, aborting alert run: %s", e)
            result.errors.append(f"Store unavailable: {e}")

        logger.info("Evaluated %d %s alerts, %d triggered", result.evaluated, alert_type, result.triggered)
        return result

    def _evaluate_all(self, alert_type: str, result: AlertRunResult):
        with store_scope(self.session_factory) as session:
            alert_ids = list(session.scalars(
                select(UserAlert.id)
                .join(User, UserAlert.user_id == User.id)
                .join(Company, UserAlert.company_id == Company.id)
                .where(UserAlert.is_active.is_(True), UserAlert.alert_type == alert_type)
                .order_by(UserAlert.id)
            ))

        for alert_id in alert_ids:
            try:
                with store_scope(self.session_factory) as session:
                    if self._evaluate_one(session, alert_id):
                        result.triggered += 1
                result.evaluated += 1
            except StoreUnavailableError:
                raise
            except Exception as e:
                logger.error("Failed to evaluate alert %s: %s", alert_id, e)
                result.errors.append(f"Alert {alert_id}: {e}")

    def _evaluate_one(self, session, alert_id: int) -> bool:
        alert = session.get(UserAlert, alert_id)
        if alert is None or not alert.is_active:
            return False

        current_price = session.scalar(
            select(PriceBar.close_price)
            .where(PriceBar.company_id == alert.company_id)
            .order_by(PriceBar.trade_date.desc())
            .limit(1)
        )
        if current_price is None or alert.condition_value is None:
            return False

        satisfied = evaluate_condition(alert.condition_operator, float(current_price),
                                       float(alert.condition_value))
        now = self._clock()
        fire = self.policy.should_fire(satisfied, bool(alert.is_triggered), alert.last_triggered_at, now)
        alert.is_triggered = satisfied
        if not fire:
            return False

        self.notifier.send(AlertNotification(
            alert_id=alert.id,
            user_id=alert.user_id,
            email=alert.user.email,
            full_name=alert.user.full_name,
            ticker=alert.company.ticker,
            company_name=alert.company.name_en,
            operator=alert.condition_operator,
            condition_value=float(alert.condition_value),
            current_price=float(current_price),
        ))
        alert.last_triggered_at = now
        return True
