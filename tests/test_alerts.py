from datetime import date, datetime, timedelta
from unittest.mock import MagicMock

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from nashra.models import PriceBar, UserAlert
from nashra.services.alert_service import AlertEvaluator, AlertPolicy, evaluate_condition

NOW = datetime(2025, 6, 1, 12, 0, 0)


class Clock:
    def __init__(self, now=NOW):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def notifier():
    return MagicMock()


@pytest.fixture
def set_price(db, companies):
    def _set(price, company=None, trade_date=date(2025, 6, 1)):
        company = company or companies[0]
        bar = db.scalar(select(PriceBar).where(PriceBar.company_id == company.id,
                                               PriceBar.trade_date == trade_date))
        if bar is None:
            bar = PriceBar(company_id=company.id, trade_date=trade_date, open_price=price,
                           high_price=price, low_price=price, volume=0)
            db.add(bar)
        bar.close_price = price
        db.commit()
    return _set


@pytest.fixture
def alert(db, companies, user):
    row = UserAlert(user_id=user.id, company_id=companies[0].id, condition_operator="gt",
                    condition_value=100.0)
    db.add(row)
    db.commit()
    return row


def reload(session_factory, alert):
    with session_factory() as s:
        return s.get(UserAlert, alert.id)


@pytest.mark.parametrize("op,price,value,expected", [
    ("gt", 101, 100, True),
    ("gt", 100, 100, False),
    ("lt", 99, 100, True),
    ("lt", 100, 100, False),
    ("eq", 100.005, 100, True),
    ("eq", 100.02, 100, False),
    ("gte", 150, 100, False),
    (None, 150, 100, False),
])
def test_evaluate_condition(op, price, value, expected):
    assert evaluate_condition(op, price, value) is expected


def test_edge_alert_fires_once_while_condition_holds(session_factory, alert, set_price, notifier, clock):
    evaluator = AlertEvaluator(session_factory, notifier=notifier, clock=clock)
    set_price(110)

    first = evaluator.evaluate()
    clock.advance(minutes=1)
    second = evaluator.evaluate()

    assert (first.evaluated, first.triggered) == (1, 1)
    assert (second.evaluated, second.triggered) == (1, 0)
    notifier.send.assert_called_once()
    sent = notifier.send.call_args.args[0]
    assert sent.email == "alice@example.com"
    assert sent.ticker == "2222.SR"
    assert sent.current_price == 110
    stored = reload(session_factory, alert)
    assert stored.is_triggered is True
    assert stored.last_triggered_at == NOW


def test_edge_alert_rearms_after_condition_clears(session_factory, alert, set_price, notifier, clock):
    evaluator = AlertEvaluator(session_factory, notifier=notifier, clock=clock)

    set_price(110)
    evaluator.evaluate()
    set_price(90)
    cleared = evaluator.evaluate()
    assert reload(session_factory, alert).is_triggered is False
    set_price(120)
    again = evaluator.evaluate()

    assert cleared.triggered == 0
    assert again.triggered == 1
    assert notifier.send.call_count == 2


def test_level_alert_fires_on_every_run(session_factory, alert, set_price, notifier, clock):
    evaluator = AlertEvaluator(session_factory, notifier=notifier, clock=clock,
                               policy=AlertPolicy(mode="level"))
    set_price(110)

    evaluator.evaluate()
    evaluator.evaluate()

    assert notifier.send.call_count == 2


def test_level_alert_respects_cooldown(session_factory, alert, set_price, notifier, clock):
    evaluator = AlertEvaluator(session_factory, notifier=notifier, clock=clock,
                               policy=AlertPolicy(mode="level", renotify_after=timedelta(minutes=30)))
    set_price(110)

    evaluator.evaluate()
    clock.advance(minutes=10)
    evaluator.evaluate()
    assert notifier.send.call_count == 1

    clock.advance(minutes=25)
    evaluator.evaluate()
    assert notifier.send.call_count == 2


def test_edge_alert_reminder_after_interval(session_factory, alert, set_price, notifier, clock):
    evaluator = AlertEvaluator(session_factory, notifier=notifier, clock=clock,
                               policy=AlertPolicy(renotify_after=timedelta(hours=1)))
    set_price(110)

    evaluator.evaluate()
    clock.advance(minutes=30)
    evaluator.evaluate()
    clock.advance(minutes=31)
    evaluator.evaluate()

    assert notifier.send.call_count == 2


def test_latest_close_is_used(session_factory, alert, set_price, notifier, clock):
    set_price(150, trade_date=date(2025, 5, 31))
    set_price(95, trade_date=date(2025, 6, 1))

    result = AlertEvaluator(session_factory, notifier=notifier, clock=clock).evaluate()

    assert result.triggered == 0
    notifier.send.assert_not_called()


def test_alert_without_price_is_skipped(session_factory, alert, notifier, clock):
    result = AlertEvaluator(session_factory, notifier=notifier, clock=clock).evaluate()

    assert result.evaluated == 1
    assert result.triggered == 0
    assert result.errors == []
    notifier.send.assert_not_called()


def test_inactive_and_other_type_alerts_are_ignored(db, session_factory, companies, user, set_price,
                                                    notifier, clock):
    db.add_all([
        UserAlert(user_id=user.id, company_id=companies[0].id, condition_operator="gt",
                  condition_value=1, is_active=False),
        UserAlert(user_id=user.id, company_id=companies[0].id, alert_type="news",
                  condition_operator="gt", condition_value=1),
    ])
    db.commit()
    set_price(110)

    result = AlertEvaluator(session_factory, notifier=notifier, clock=clock).evaluate("price")

    assert result.evaluated == 0
    notifier.send.assert_not_called()


def test_notifier_failure_is_isolated(db, session_factory, companies, user, set_price, notifier, clock):
    db.add_all([
        UserAlert(user_id=user.id, company_id=companies[0].id, condition_operator="gt", condition_value=1),
        UserAlert(user_id=user.id, company_id=companies[0].id, condition_operator="lt", condition_value=500),
    ])
    db.commit()
    set_price(110)
    notifier.send.side_effect = [RuntimeError("smtp down"), None]

    result = AlertEvaluator(session_factory, notifier=notifier, clock=clock).evaluate()

    assert result.triggered == 1
    assert len(result.errors) == 1
    assert "smtp down" in result.errors[0]


def test_policy_rejects_unknown_mode():
    with pytest.raises(ValueError):
        AlertPolicy(mode="sometimes")


def test_policy_from_settings(settings):
    settings.ALERT_TRIGGER_MODE = "LEVEL"
    settings.ALERT_RENOTIFY_MINUTES = 15

    policy = AlertPolicy.from_settings(settings)

    assert policy.mode == "level"
    assert policy.renotify_after == timedelta(minutes=15)


def connection_refused():
    return OperationalError("SELECT", {}, Exception("connection refused"))


def test_store_outage_mid_run_aborts_with_single_error(db, session_factory, companies, user, set_price,
                                                        notifier, clock):
    db.add_all([UserAlert(user_id=user.id, company_id=companies[0].id, condition_operator="gt",
                          condition_value=i) for i in range(5)])
    db.commit()
    set_price(110)
    calls = []

    def flaky_factory():
        calls.append(1)
        if len(calls) == 1:
            return session_factory()
        session = MagicMock()
        session.get.side_effect = connection_refused()
        return session

    result = AlertEvaluator(flaky_factory, notifier=notifier, clock=clock).evaluate()

    assert result.evaluated == 0
    assert len(result.errors) == 1
    assert result.errors[0].startswith("Store unavailable")
    # the run stops at the first lost connection
    assert len(calls) == 2
    notifier.send.assert_not_called()


def test_store_outage_on_alert_lookup(notifier, clock):
    def broken_factory():
        session = MagicMock()
        session.scalars.side_effect = connection_refused()
        return session

    result = AlertEvaluator(broken_factory, notifier=notifier, clock=clock).evaluate()

    assert result.evaluated == 0
    assert len(result.errors) == 1
    assert result.errors[0].startswith("Store unavailable")
