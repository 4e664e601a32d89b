"""Page objects for web pages and mobile screens."""

from .base import MobileBasePage, WebBasePage
from .login import LoginPage

__all__ = ["LoginPage", "MobileBasePage", "WebBasePage"]
