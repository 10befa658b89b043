"""
Static server for HTML reports.

Serves a written report folder so it can be browsed locally, on the host
and port configured for the HTML reporter.
"""

from pathlib import Path
from typing import Union

from aiohttp import web

from ..core.exceptions import HarnessError
from ..core.logging_config import get_logger

logger = get_logger(__name__)


def create_app(folder: Union[str, Path]) -> web.Application:
    """
    Build the aiohttp application serving a report folder.

    Raises:
        HarnessError: If the folder does not hold an HTML report
    """
    folder = Path(folder).resolve()
    index = folder / "index.html"
    if not index.is_file():
        raise HarnessError(f"No report found in {folder}", "REPORT_NOT_FOUND")

    async def handle_index(request: web.Request) -> web.FileResponse:
        return web.FileResponse(index)

    app = web.Application()
    app.router.add_get("/", handle_index)
    app.router.add_get("/index.html", handle_index)
    data_dir = folder / "data"
    if data_dir.is_dir():
        app.router.add_static("/data", data_dir)
    return app


def serve_report(folder: Union[str, Path], host: str = "localhost", port: int = 9323) -> None:
    """Serve a report until interrupted."""
    app = create_app(folder)
    logger.info(
        f"Serving HTML report at http://{host}:{port}",
        extra={"metadata": {"folder": str(folder)}},
    )
    print(f"\n  Serving HTML report at http://{host}:{port}. Press Ctrl+C to quit.")
    web.run_app(app, host=host, port=port, print=None)
