"""Playwright API request contexts for HTTP-level scenarios."""

import logging
from typing import Any, List, Optional

from ..core.platform import SessionKind
from ..core.properties import PropertySet
from .base import SessionFactory
from .models import ApiHandles, SessionBinding, TeardownStep


class ApiSessionFactory(SessionFactory):
    """Creates one APIRequestContext per binding."""

    kind = SessionKind.API
    needs_engine = True

    def __init__(
        self,
        properties: PropertySet,
        logger: Optional[logging.Logger] = None,
    ):
        super().__init__(logger)
        self.properties = properties

    def request_options(self) -> dict:
        options = {"timeout": self.properties.get_float("api_timeout", 30000.0)}
        base_url = self.properties.env("api_base_url", None)
        if base_url:
            options["base_url"] = base_url
        token = self.properties.env("api_token", None)
        if token:
            options["extra_http_headers"] = {"Authorization": f"Bearer {token}"}
        options["ignore_https_errors"] = self.properties.get_bool(
            "api_ignore_https_errors", False
        )
        return options

    def create(self, binding: SessionBinding, engine: Any = None) -> None:
        options = self.request_options()
        binding.api = ApiHandles(base_url=options.get("base_url"))
        self.logger.info(
            f"Creating API request context for context {binding.context_id}",
            extra={"context_id": binding.context_id},
        )
        binding.api.request_context = engine.request.new_context(**options)

    def teardown_steps(self, binding: SessionBinding) -> List[TeardownStep]:
        if binding.api is None or binding.api.request_context is None:
            return []
        return [("api.request_context", binding.api.request_context.dispose)]
