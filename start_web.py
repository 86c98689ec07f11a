#!/usr/bin/env python3
"""Serve the composer-reconcile web API with uvicorn.

Host, port and reloading come from ``RECONCILE_WEB_HOST``,
``RECONCILE_WEB_PORT`` and ``RECONCILE_WEB_RELOAD``.
"""

import uvicorn

from reconcile.config import ReconcileSettings, get_settings

APP = "apps.web.main:app"
RELOAD_DIRS = ["apps", "reconcile"]


def main(settings: ReconcileSettings | None = None) -> None:
    settings = settings or get_settings()
    options = {"host": settings.web_host, "port": settings.web_port, "log_level": settings.log_level}
    if settings.web_reload:
        options.update(reload=True, reload_dirs=RELOAD_DIRS)
    uvicorn.run(APP, **options)


if __name__ == "__main__":
    main()
