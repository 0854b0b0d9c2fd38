"""Push notification dispatch and unread badge bookkeeping."""

from imbiber.notifier.badge import BadgeCounter
from imbiber.notifier.bark import BarkNotifier

__all__ = ["BadgeCounter", "BarkNotifier"]
