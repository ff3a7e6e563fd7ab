"""
Crawl orchestration engine: fetch backends, session pooling, depth-limited
crawling and cron scheduling for configured news sources.
"""

__version__ = "1.0.0"
