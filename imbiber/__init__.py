"""Book Imbiber - follow authors and get notified about their new releases."""

__version__ = "0.1.0"
