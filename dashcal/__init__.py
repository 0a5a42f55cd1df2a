"""dashcal - calendar feed ingestion and recurrence expansion for a home dashboard.

Imports are kept light so the package and its version can be inspected
without pulling in the HTTP stack.
"""

__version__ = "0.1.0"

from typing import Any, Optional


def run_server(args: Optional[Any] = None) -> None:
    """Load settings from the environment and run the HTTP server.

    Args:
        args: Optional argparse namespace carrying ``host``, ``port`` and
            ``debug`` overrides
    """
    from dashcal.api.server import start_server
    from dashcal.core.config_manager import ConfigManager

    settings = ConfigManager().load_settings()
    if args is not None:
        settings = settings.with_overrides(
            server_bind=getattr(args, "host", None),
            server_port=getattr(args, "port", None),
        )
    start_server(settings, debug_mode=bool(getattr(args, "debug", False)))


__all__ = ["__version__", "run_server"]
