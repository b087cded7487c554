"""
Services package for the ladder engine.

Read models over the durable mirror and the tier-change notification hook.
"""

from .base import BaseService
from .notifier import TierChangeNotifier

__all__ = ['BaseService', 'TierChangeNotifier']
