"""Demo data: Tadawul companies, calendar events and a demo user."""
import logging
from datetime import date

from sqlalchemy import select
from sqlalchemy.orm import Session

from nashra.core.security import hash_password
from nashra.models import CalendarEvent, Company, User

logger = logging.getLogger(__name__)

SEED_COMPANIES = [
    {"ticker": "2222.SR", "name_en": "Saudi Aramco", "name_ar": "أرامكو السعودية",
     "sector": "Energy", "industry": "Oil & Gas"},
    {"ticker": "1120.SR", "name_en": "Al Rajhi Bank", "name_ar": "مصرف الراجحي",
     "sector": "Financials", "industry": "Banking"},
    {"ticker": "2010.SR", "name_en": "SABIC", "name_ar": "سابك",
     "sector": "Materials", "industry": "Chemicals"},
    {"ticker": "2020.SR", "name_en": "SABIC Agri-Nutrients", "name_ar": "سابك للمغذيات الزراعية",
     "sector": "Materials", "industry": "Fertilizers"},
    {"ticker": "1180.SR", "name_en": "Saudi National Bank", "name_ar": "البنك الأهلي السعودي",
     "sector": "Financials", "industry": "Banking"},
    {"ticker": "7020.SR", "name_en": "Etihad Etisalat (Mobily)", "name_ar": "اتحاد اتصالات (موبايلي)",
     "sector": "Communication Services", "industry": "Telecom"},
    {"ticker": "4280.SR", "name_en": "Kingdom Holding", "name_ar": "المملكة القابضة",
     "sector": "Financials", "industry": "Investment"},
]

SEED_EVENTS = [
    {"ticker": "2222.SR", "event_type": "earnings", "event_date": date(2025, 11, 4),
     "title_en": "Q3 2025 Earnings Call", "title_ar": "مكالمة أرباح الربع الثالث 2025"},
    {"ticker": "1120.SR", "event_type": "dividend", "event_date": date(2025, 12, 15),
     "title_en": "Dividend Payment", "title_ar": "دفع الأرباح", "amount": 1.5, "currency": "SAR"},
    {"ticker": "2010.SR", "event_type": "agm", "event_date": date(2026, 3, 20),
     "title_en": "Annual General Meeting", "title_ar": "الجمعية العمومية السنوية"},
]


def upsert_user(db: Session, email: str, password: str, full_name: str, role: str,
                tier: str = "free") -> User:
    """Create the user, or reset password and role if the email exists."""
    email = email.lower()
    user = db.scalar(select(User).where(User.email == email))
    if user is None:
        user = User(email=email, full_name=full_name)
        db.add(user)
    user.password_hash = hash_password(password)
    user.role = role
    user.subscription_tier = tier
    user.is_active = True
    db.flush()
    return user


def seed_demo_data(db: Session) -> int:
    """Insert what is missing; returns the number of companies created."""
    created = 0
    by_ticker = {}
    for row in SEED_COMPANIES:
        company = db.scalar(select(Company).where(Company.ticker == row["ticker"]))
        if company is None:
            company = Company(market="saudi", is_active=True, **row)
            db.add(company)
            created += 1
        by_ticker[row["ticker"]] = company
    db.flush()

    for row in SEED_EVENTS:
        row = dict(row)
        company = by_ticker[row.pop("ticker")]
        exists = db.scalar(select(CalendarEvent.id).where(
            CalendarEvent.company_id == company.id,
            CalendarEvent.event_type == row["event_type"],
            CalendarEvent.event_date == row["event_date"],
        ))
        if exists is None:
            db.add(CalendarEvent(company_id=company.id, **row))

    if db.scalar(select(User.id).where(User.email == "demo@nashra-iq.com")) is None:
        upsert_user(db, "demo@nashra-iq.com", "demo123", "Demo User", "registered")

    logger.info("Seeded %d companies", created)
    return created
