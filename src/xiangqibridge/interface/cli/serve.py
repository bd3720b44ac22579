from __future__ import annotations

import errno
import socket

import click

from src.xiangqibridge.infrastructure.config import load_config
from src.xiangqibridge.interface.http.app import create_app, registry_for
from src.xiangqibridge.interface.telemetry.logging import get_logger


def find_available_port(host: str, start: int, attempts: int = 10) -> int:
    """Return the first port from ``start`` that can be bound on ``host``."""
    for port in range(start, start + max(1, attempts)):
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as candidate:
            try:
                candidate.bind((host, port))
            except OSError as exc:
                if exc.errno != errno.EADDRINUSE:
                    raise
                continue
        return port
    raise click.ClickException(f"No free port in {start}-{start + attempts - 1} on {host}.")


@click.command(context_settings={"help_option_names": ["-h", "--help"]})
@click.option("--host", type=str, default=None, help="Bind address (defaults to SERVER_HOST).")
@click.option("--port", type=int, default=None, help="First port to try (defaults to SERVER_PORT).")
@click.option("--port-attempts", type=int, default=10, show_default=True, help="Successive ports to try when busy.")
@click.option("--debug", is_flag=True, help="Run Flask in debug mode.")
def main(host: str | None, port: int | None, port_attempts: int, debug: bool) -> None:
    """Serve the engine session API until interrupted, then stop every engine."""
    config = load_config()
    app = create_app(config)
    logger = get_logger("xiangqibridge.cli")

    bind_host = host or config.server_host
    bind_port = find_available_port(bind_host, port or config.server_port, port_attempts)
    if bind_port != (port or config.server_port):
        click.echo(f"Port {port or config.server_port} is busy; using {bind_port}.", err=True)

    click.secho(f"Engine bridge listening on http://{bind_host}:{bind_port}", fg="green")
    try:
        app.run(host=bind_host, port=bind_port, debug=debug, use_reloader=False, threaded=True)
    finally:
        stopped = registry_for(app).shutdown()
        logger.info("server_stopped", sessions_stopped=stopped)


if __name__ == "__main__":  # pragma: no cover
    main()


__all__ = ["find_available_port", "main"]
