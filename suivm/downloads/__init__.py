"""Binary download module."""

from .download_manager import Downloader
from .retry import RetryPolicy

__all__ = ["Downloader", "RetryPolicy"]
