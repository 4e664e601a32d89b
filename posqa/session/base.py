"""Base class for the factories that build one kind of automation handle."""

import logging
from typing import Any, List

from ..core.platform import SessionKind
from .models import SessionBinding, TeardownStep


class SessionFactory:
    """
    Builds and tears down one kind of handle for a binding.

    ``create`` must store each handle on the binding as soon as it exists so
    that a failure half way through leaves something ``teardown_steps`` can
    clean up.
    """

    kind: SessionKind
    needs_engine: bool = False

    def __init__(self, logger: logging.Logger = None):
        self.logger = logger or logging.getLogger(self.__class__.__module__)

    def create(self, binding: SessionBinding, engine: Any = None) -> None:
        raise NotImplementedError

    def teardown_steps(self, binding: SessionBinding) -> List[TeardownStep]:
        raise NotImplementedError
