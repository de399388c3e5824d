"""Meta message describing the producing environment."""

import platform
from importlib.metadata import PackageNotFoundError, version

from bdd_messages.models.messages import PROTOCOL_VERSION, Envelope, Meta, Product

DISTRIBUTION_NAME = "bdd-messages"


def implementation_version() -> str | None:
    """Installed version of this package, if installed."""
    try:
        return version(DISTRIBUTION_NAME)
    except PackageNotFoundError:
        return None


def build_meta_message() -> Envelope:
    """Build the meta message for the current process."""
    return Envelope(
        meta=Meta(
            protocol_version=PROTOCOL_VERSION,
            implementation=Product(
                name=DISTRIBUTION_NAME, version=implementation_version()
            ),
            runtime=Product(
                name=platform.python_implementation(),
                version=platform.python_version(),
            ),
            os=Product(name=platform.system(), version=platform.release()),
            cpu=Product(name=platform.machine()),
        )
    )
