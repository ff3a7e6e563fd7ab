"""
Session pooling for fetch backends.
"""

from .session_pool import PooledSession, SessionPool

__all__ = ['PooledSession', 'SessionPool']
