# crawl_engine/extractors/backend_factory.py
"""
Factory for creating fetch backends based on a source's configured backend type.
The registry is consulted once per run, never per call.
"""
from typing import Dict, Callable, List

from loguru import logger

from crawl_engine.interfaces import BackendType, IFetchBackend
from crawl_engine.extractors.browser_backend import BrowserBackend
from crawl_engine.extractors.static_backend import StaticHtmlBackend
from utils.config import CrawlerSettings


BackendBuilder = Callable[[CrawlerSettings], IFetchBackend]


class BackendFactory:
    """
    Factory for fetch backend implementations.
    New backend types are added by registering a builder.
    """

    _REGISTRY: Dict[BackendType, BackendBuilder] = {
        BackendType.BROWSER: lambda settings: BrowserBackend(
            headless=settings.browser_headless,
            javascript_enabled=settings.browser_javascript_enabled,
            user_agent=settings.user_agent,
        ),
        BackendType.STATIC_HTML: lambda settings: StaticHtmlBackend(user_agent=settings.user_agent),
    }

    @classmethod
    def create_backend(cls, backend_type: BackendType, settings: CrawlerSettings) -> IFetchBackend:
        """
        Create a backend for the given type.

        Raises:
            ValueError: If no builder is registered for the type
        """
        builder = cls._REGISTRY.get(backend_type)
        if builder is None:
            raise ValueError(f"No backend available for type: {backend_type}")
        logger.debug(f"Creating {backend_type.value} backend")
        return builder(settings)

    @classmethod
    def register_backend(cls, backend_type: BackendType, builder: BackendBuilder) -> None:
        cls._REGISTRY[backend_type] = builder
        logger.info(f"Registered backend builder for type {backend_type.value}")

    @classmethod
    def get_supported_backend_types(cls) -> List[BackendType]:
        return list(cls._REGISTRY.keys())
