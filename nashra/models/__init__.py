from nashra.db.base_class import Base
from nashra.models.company import CalendarEvent, Company, Fundamental, PriceBar
from nashra.models.market import MarketIndexSnapshot
from nashra.models.news import AISummary, ModerationItem, NewsCompany, NewsItem
from nashra.models.user import User, UserAlert

__all__ = [
    "Base",
    "Company",
    "PriceBar",
    "Fundamental",
    "CalendarEvent",
    "NewsItem",
    "NewsCompany",
    "AISummary",
    "ModerationItem",
    "MarketIndexSnapshot",
    "User",
    "UserAlert",
]
