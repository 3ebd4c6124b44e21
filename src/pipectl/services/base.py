"""BaseService — foundation for all pipectl services.

Every service receives a :class:`Runtime` at construction time. The
Runtime provides the Kafka admin, compose, API, and config-file adapters
plus the cancel event that interrupts any wait.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pipectl.config.settings import PipeSettings
    from pipectl.infrastructure.runtime import Runtime


class BaseService:
    """Base for service-layer classes.

    Usage::

        class ProvisionService(BaseService):
            def ensure_topics(self, specs) -> ServiceResult:
                outcome = self._runtime.topic_admin.create_topics(specs)
                ...
    """

    def __init__(self, runtime: Runtime) -> None:
        self._runtime = runtime

    @property
    def settings(self) -> PipeSettings:
        return self._runtime.settings
