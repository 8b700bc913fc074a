from datetime import date
from unittest.mock import MagicMock

import pytest
from sqlalchemy.dialects import postgresql, sqlite

from nashra.db.upserts import upsert_price_bar


def captured_price_upsert(dialect_name):
    session = MagicMock()
    session.get_bind.return_value.dialect.name = dialect_name
    upsert_price_bar(session, company_id=1, trade_date=date(2025, 6, 1), open_price=27.5,
                     high_price=28.1, low_price=27.3, close_price=27.95, volume=1000)
    return session.execute.call_args.args[0]


def test_postgres_price_upsert_uses_greatest_and_least():
    sql = str(captured_price_upsert("postgresql").compile(dialect=postgresql.dialect()))

    assert "ON CONFLICT (company_id, trade_date) DO UPDATE" in sql
    assert "greatest(coalesce(prices_ohlc.high_price, excluded.high_price), excluded.high_price)" in sql
    assert "least(coalesce(prices_ohlc.low_price, excluded.low_price), excluded.low_price)" in sql
    assert "close_price = excluded.close_price" in sql
    # open keeps the first value of the day
    assert "open_price = " not in sql.split("DO UPDATE", 1)[1]


def test_sqlite_price_upsert_uses_scalar_max_and_min():
    sql = str(captured_price_upsert("sqlite").compile(dialect=sqlite.dialect()))

    assert "ON CONFLICT (company_id, trade_date) DO UPDATE" in sql
    assert "max(coalesce(prices_ohlc.high_price, excluded.high_price), excluded.high_price)" in sql
    assert "min(coalesce(prices_ohlc.low_price, excluded.low_price), excluded.low_price)" in sql
    assert "greatest" not in sql


def test_unsupported_dialect_is_rejected():
    with pytest.raises(NotImplementedError):
        captured_price_upsert("mysql")
