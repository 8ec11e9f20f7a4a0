"""HTTP surface of the gateway.

Usage::

    from govgate.api import create_app

    app = create_app()
"""

from govgate.api.app import create_app

__all__ = ["create_app"]
