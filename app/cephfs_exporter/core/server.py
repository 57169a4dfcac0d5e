"""HTTP exposition of the metric registry.

The metrics endpoint is ``prometheus_client``'s own WSGI application
over the exporter's collector registry. Before delegating to it, the
collection trigger gets a chance to refresh the registry (on-demand mode
walks here).
"""

import logging
from collections.abc import Callable, Iterable
from typing import Any
from wsgiref.simple_server import WSGIRequestHandler, WSGIServer, make_server

from prometheus_client import make_wsgi_app
from prometheus_client.exposition import ThreadingWSGIServer

from cephfs_exporter.core.registry import MetricRegistry
from cephfs_exporter.core.trigger import CollectionTrigger
from cephfs_exporter.models.roots import RootsConfigError

logger = logging.getLogger(__name__)

StartResponse = Callable[..., Any]
WSGIApp = Callable[[dict[str, Any], StartResponse], Iterable[bytes]]

_LANDING_PAGE = """<html>
<head><title>CephFS Exporter</title></head>
<body>
<h1>CephFS Exporter</h1>
<p><a href="{path}">Metrics</a></p>
</body>
</html>
"""


def make_metrics_app(
    registry: MetricRegistry,
    trigger: CollectionTrigger,
    metrics_path: str = "/metrics",
) -> WSGIApp:
    """Create the WSGI application serving the metrics.

    Args:
        registry: Registry to expose.
        trigger: Collection trigger notified before each scrape.
        metrics_path: URL path of the metrics endpoint.

    Returns:
        WSGI application callable.
    """
    exposition_app = make_wsgi_app(registry.collector_registry)

    def app(environ: dict[str, Any], start_response: StartResponse) -> Iterable[bytes]:
        path = environ.get("PATH_INFO") or "/"

        if path == metrics_path:
            try:
                trigger.before_scrape()
            except RootsConfigError as e:
                logger.error("Scrape-time collection failed: %s", e)
            return exposition_app(environ, start_response)

        if path == "/":
            body = _LANDING_PAGE.format(path=metrics_path).encode()
            return _respond(start_response, "200 OK", "text/html; charset=utf-8", body)

        return _respond(
            start_response, "404 Not Found", "text/plain; charset=utf-8", b"Not Found\n"
        )

    return app


def _respond(
    start_response: StartResponse, status: str, content_type: str, body: bytes
) -> list[bytes]:
    start_response(status, [("Content-Type", content_type), ("Content-Length", str(len(body)))])
    return [body]


class _LoggingHandler(WSGIRequestHandler):
    """Request handler that logs through the logging module."""

    def log_message(self, format: str, *args: Any) -> None:  # noqa: A002
        logger.debug("%s - %s", self.address_string(), format % args)


def create_server(app: WSGIApp, host: str, port: int) -> WSGIServer:
    """Bind a threaded WSGI server for the application.

    Raises:
        OSError: If the address cannot be bound.
    """
    return make_server(host, port, app, ThreadingWSGIServer, handler_class=_LoggingHandler)
