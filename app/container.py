# FILE: app/container.py
"""
Application wiring.

build_container(settings) assembles the process-wide objects in dependency
order: metrics -> limiters -> provider adapters -> fallback orchestrators
-> catalog -> modules -> registry + middleware -> processor.

Modules receive only the narrow store / limiter / expander they need; the
program module gets the catalog's semester lookup, never the course module.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from config.settings import Settings, load_settings
from app.bot.middleware import logging_middleware, metrics_middleware, recovery_middleware
from app.bot.processor import Processor
from app.bot.registry import HandlerRegistry
from app.llm.fallbacks import FallbackIntentParser, FallbackQueryExpander
from app.metrics.tracker import BotMetrics
from app.modules.catalog import InMemoryCatalog
from app.modules.contact import ContactModule
from app.modules.course import CourseModule
from app.modules.id import IDModule
from app.modules.program import ProgramModule
from app.modules.usage import UsageModule
from app.providers.registry import create_adapter
from app.ratelimit.keyed import KeyedLimiter
from app.ratelimit.limiters import new_llm_limiter, new_user_limiter

logger = logging.getLogger(__name__)


@dataclass
class Container:
    settings: Settings
    metrics: BotMetrics
    user_limiter: KeyedLimiter
    llm_limiter: KeyedLimiter
    intent_parser: FallbackIntentParser
    expander: FallbackQueryExpander
    catalog: InMemoryCatalog
    registry: HandlerRegistry
    processor: Processor

    def start(self) -> None:
        self.user_limiter.start()
        self.llm_limiter.start()

    async def stop(self) -> None:
        await self.user_limiter.stop()
        await self.llm_limiter.stop()


def build_container(
    settings: Optional[Settings] = None,
    catalog: Optional[InMemoryCatalog] = None,
) -> Container:
    settings = settings or load_settings()
    metrics = BotMetrics()

    user_limiter = new_user_limiter(settings, metrics)
    llm_limiter = new_llm_limiter(settings, metrics)

    primary = fallback = None
    if settings.nlu_enabled():
        adapters = [create_adapter(pid, settings, metrics) for pid in settings.configured_providers()]
        primary, fallback = (adapters + [None])[:2]
    elif settings.llm_enabled:
        logger.warning("[container] no LLM provider key set; running keyword-only")
    else:
        logger.info("[container] LLM_ENABLED=false; NLU and query expansion disabled")

    intent_parser = FallbackIntentParser(primary, fallback, metrics=metrics)
    expander = FallbackQueryExpander(primary, fallback, metrics=metrics)
    if intent_parser.is_enabled():
        logger.info(f"[container] LLM providers: {intent_parser.providers()}")

    if catalog is None:
        catalog = InMemoryCatalog.from_file(settings.catalog_path)

    registry = HandlerRegistry()
    registry.register(ContactModule(catalog))
    registry.register(CourseModule(catalog, semesters=catalog, expander=expander, llm_limiter=llm_limiter))
    registry.register(IDModule(catalog))
    registry.register(ProgramModule(catalog, semesters=catalog))
    registry.register(UsageModule(user_limiter, llm_limiter))

    # First registered runs outermost
    registry.use(logging_middleware())
    registry.use(recovery_middleware())
    registry.use(metrics_middleware(metrics))

    processor = Processor(
        registry,
        user_limiter=user_limiter,
        llm_limiter=llm_limiter,
        intent_parser=intent_parser,
        metrics=metrics,
        settings=settings,
    )
    logger.info(f"[container] modules registered: {registry.names()}")

    return Container(
        settings=settings,
        metrics=metrics,
        user_limiter=user_limiter,
        llm_limiter=llm_limiter,
        intent_parser=intent_parser,
        expander=expander,
        catalog=catalog,
        registry=registry,
        processor=processor,
    )


__all__ = ["Container", "build_container"]
