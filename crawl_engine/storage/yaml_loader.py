# crawl_engine/storage/yaml_loader.py
"""
Configuration loader for sources, selectors and schedules.
Seeds an InMemoryCrawlStorage from a YAML file.
"""
import itertools
from typing import Any, Dict, List, Optional

import yaml
from loguru import logger

from crawl_engine.models import CleanupSchedule, Schedule, Selector, Source
from crawl_engine.storage.memory_storage import InMemoryCrawlStorage


class SourceConfigLoader:
    """Loads the sources YAML into a storage instance."""

    @classmethod
    def load_from_yaml(cls, config_path: str,
                       storage: Optional[InMemoryCrawlStorage] = None) -> InMemoryCrawlStorage:
        """
        Load source, schedule and cleanup definitions.

        Invalid entries are logged and skipped.

        Args:
            config_path: Path to YAML configuration file
            storage: Storage to seed; a new one is created when omitted

        Returns:
            The seeded storage
        """
        storage = storage or InMemoryCrawlStorage()

        try:
            with open(config_path, 'r', encoding='utf-8') as file:
                data = yaml.safe_load(file) or {}
        except (OSError, yaml.YAMLError) as e:
            logger.error(f"Failed to load configuration from {config_path}: {e}")
            return storage

        return cls.load_from_dict(data, storage)

    @classmethod
    def load_from_dict(cls, data: Dict[str, Any],
                       storage: Optional[InMemoryCrawlStorage] = None) -> InMemoryCrawlStorage:
        storage = storage or InMemoryCrawlStorage()
        selector_ids = itertools.count(1)

        for source_data in data.get('sources') or []:
            try:
                source = cls._convert_source(source_data, selector_ids)
                storage.add_source(source)
            except (KeyError, TypeError, ValueError) as e:
                logger.error(f"Failed to process source config {source_data!r}: {e}")

        for schedule_data in data.get('schedules') or []:
            try:
                storage.add_schedule(cls._convert_schedule(schedule_data))
            except (KeyError, TypeError, ValueError) as e:
                logger.error(f"Failed to process schedule config {schedule_data!r}: {e}")

        for cleanup_data in data.get('cleanup_schedules') or []:
            try:
                storage.add_cleanup_schedule(CleanupSchedule(
                    id=int(cleanup_data['id']),
                    name=cleanup_data.get('name', f"cleanup-{cleanup_data['id']}"),
                    cron_expression=cleanup_data['cron'],
                    keep_articles_count=int(cleanup_data.get('keep_articles_count', 1000)),
                    active=cleanup_data.get('active', True),
                ))
            except (KeyError, TypeError, ValueError) as e:
                logger.error(f"Failed to process cleanup config {cleanup_data!r}: {e}")

        logger.info(f"Loaded {len(storage.sources)} sources, {len(storage.schedules)} schedules "
                    f"and {len(storage.cleanup_schedules)} cleanup schedules")
        return storage

    @classmethod
    def _convert_source(cls, source_data: Dict[str, Any], selector_ids) -> Source:
        source_id = int(source_data['id'])
        selectors = cls._convert_selectors(source_id, source_data.get('selectors') or {}, selector_ids)
        return Source(
            id=source_id,
            name=source_data['name'],
            base_url=source_data['url'],
            backend=source_data.get('backend', 'browser'),
            active=source_data.get('enabled', True),
            selectors=selectors,
        )

    @staticmethod
    def _convert_selectors(source_id: int, selector_data: Dict[str, Any], selector_ids) -> List[Selector]:
        """
        Selectors are a mapping of role to an expression or a list of
        expressions. List position is the priority unless an entry gives one.
        """
        selectors = []
        for role, entries in selector_data.items():
            if isinstance(entries, (str, dict)):
                entries = [entries]
            for position, entry in enumerate(entries, start=1):
                if isinstance(entry, str):
                    entry = {'expression': entry}
                selectors.append(Selector(
                    id=next(selector_ids),
                    source_id=source_id,
                    role=role,
                    expression=entry['expression'],
                    priority=int(entry.get('priority', position)),
                    active=entry.get('active', True),
                ))
        return selectors

    @staticmethod
    def _convert_schedule(schedule_data: Dict[str, Any]) -> Schedule:
        return Schedule(
            id=int(schedule_data['id']),
            source_id=int(schedule_data['source_id']),
            cron_expression=schedule_data['cron'],
            active=schedule_data.get('active', True),
            crawl_depth=int(schedule_data.get('crawl_depth', 0)),
            full_content=bool(schedule_data.get('full_content', False)),
            article_limit=int(schedule_data.get('article_limit', 10)),
            timeout=int(schedule_data.get('timeout', 300000)),
            follow_links=schedule_data.get('follow_links', True) is not False,
        )


def load_storage_from_yaml(config_path: str) -> InMemoryCrawlStorage:
    """Convenience function to seed a storage from YAML."""
    return SourceConfigLoader.load_from_yaml(config_path)
