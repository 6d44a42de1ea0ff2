"""Entry point for configuration pushed by the companion application."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Mapping, Optional, Union

from dashboardtv.core.config import ConfigurationPush
from dashboardtv.core.rotation import RotationController
from dashboardtv.utils.log import get_logger

logger = get_logger()


def parse_configuration(raw: Union[str, bytes]) -> ConfigurationPush:
    """Parse a configuration push from JSON text.

    Raises pydantic.ValidationError for malformed documents.
    """
    return ConfigurationPush.model_validate_json(raw)


class ConfigurationReceiver:
    """Validates pushed configuration and hands it to the rotation controller."""

    def __init__(self, controller: RotationController) -> None:
        self._controller = controller
        self.last_config_time: Optional[datetime] = None
        self.last_source: Optional[str] = None

    def handle(
        self,
        payload: Union[ConfigurationPush, Mapping[str, Any]],
        source: Optional[str] = None,
    ) -> ConfigurationPush:
        if isinstance(payload, ConfigurationPush):
            push = payload
        else:
            push = ConfigurationPush.model_validate(dict(payload))
        targets = push.to_targets()
        self._controller.reconfigure(targets, push.to_settings())
        self.last_config_time = datetime.now(timezone.utc)
        self.last_source = source
        logger.info(
            "[configuration] Configuration received",
            extra={"source": source, "urls": len(push.urls)},
        )
        return push

    def handle_json(self, raw: Union[str, bytes], source: Optional[str] = None) -> ConfigurationPush:
        try:
            push = parse_configuration(raw)
        except ValueError as exc:
            logger.warning(
                "[configuration] Rejected configuration: %s",
                type(exc).__name__,
                extra={"source": source, "detail": str(exc)[:200]},
            )
            raise
        return self.handle(push, source=source)

