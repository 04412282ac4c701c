"""Change-detection bridge correlating Odoo record changes to workflow consumers."""

from typing import List, Optional

from .polling.identity import message_identity


def main(argv: Optional[List[str]] = None) -> int:
    """Entrypoint proxy that defers importing the command line until needed."""

    from .__main__ import main as _cli_main

    return _cli_main(argv)


__all__ = ["main", "message_identity"]
