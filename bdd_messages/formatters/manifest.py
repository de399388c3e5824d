"""Formatter manifest definition for the plugin system."""

from collections.abc import Callable
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass

from pydantic import BaseModel

from bdd_messages.channel import MessageSink


@dataclass(frozen=True, kw_only=True)
class FormatterManifest[ConfigT: BaseModel]:
    """Entry-point payload of a formatter plugin.

    Pairs the formatter's configuration model with the factory opening the
    formatter, so a formatter is only constructed once its key is selected.
    """

    config_cls: type[ConfigT]
    formatter_factory: Callable[[ConfigT], AbstractAsyncContextManager[MessageSink]]

    def parse_config(self, config_json: str) -> ConfigT:
        """Validate a JSON configuration document.

        Raises:
            pydantic.ValidationError: If the document is not valid JSON or
                does not match the configuration model

        """
        return self.config_cls.model_validate_json(config_json)

    def open(self, config: ConfigT) -> AbstractAsyncContextManager[MessageSink]:
        """Open the formatter for the duration of a context."""
        return self.formatter_factory(config)
