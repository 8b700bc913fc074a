"""Composition root: builds the pipeline services from settings.

The API lifespan, the CLI and the worker all go through ``build_pipeline``;
tests build a ``Pipeline`` by hand around an in-memory database.
"""
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from nashra.core.config import Settings
from nashra.core.redis import build_cache
from nashra.db.session import build_engine, build_session_factory, init_db
from nashra.services.alert_service import AlertEvaluator, AlertPolicy
from nashra.services.content import build_classifier, build_summarizer, build_translator
from nashra.services.providers import DataSourceFactory
from nashra.services.refresh_service import DataRefreshService
from nashra.services.runner import RefreshRunner


@dataclass
class Pipeline:
    settings: Settings
    session_factory: sessionmaker
    cache: object
    refresh_service: DataRefreshService
    runner: RefreshRunner
    alert_evaluator: AlertEvaluator
    engine: Optional[Engine] = None

    def close(self) -> None:
        self.refresh_service.close()
        self.cache.close()
        if self.engine is not None:
            self.engine.dispose()


def build_pipeline(settings: Settings, session_factory: Optional[sessionmaker] = None,
                   cache=None, create_schema: bool = True) -> Pipeline:
    engine = None
    if session_factory is None:
        engine = build_engine(settings)
        if create_schema:
            init_db(engine)
        session_factory = build_session_factory(engine)
    if cache is None:
        cache = build_cache(settings)

    refresh_service = DataRefreshService(
        session_factory=session_factory,
        stock_source=DataSourceFactory.stock_source(settings),
        news_source=DataSourceFactory.news_source(settings),
        index_source=DataSourceFactory.index_source(settings),
        classifier=build_classifier(settings.OPENAI_API_KEY, settings.OPENAI_MODEL),
        summarizer=build_summarizer(settings.ANTHROPIC_API_KEY, settings.ANTHROPIC_MODEL),
        translator=build_translator(settings.GOOGLE_TRANSLATE_KEY),
        cache=cache,
        fetch_timeout=settings.FETCH_TIMEOUT_SECONDS,
        fetch_concurrency=settings.FETCH_CONCURRENCY,
    )
    return Pipeline(
        settings=settings,
        session_factory=session_factory,
        cache=cache,
        refresh_service=refresh_service,
        runner=RefreshRunner(refresh_service, timeout_seconds=settings.REFRESH_TIMEOUT_SECONDS),
        alert_evaluator=AlertEvaluator(session_factory, policy=AlertPolicy.from_settings(settings)),
        engine=engine,
    )
