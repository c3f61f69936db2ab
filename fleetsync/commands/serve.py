"""FleetSync server command: the operator API on the encrypted listener."""

from __future__ import annotations

import logging
import signal
import threading
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ..service import Service

logger = logging.getLogger("fleetsync")


def cmd_serve(service: Service, *, stop_event: threading.Event | None = None) -> None:
    """Start the HTTPS listener and block until interrupted or stop_event is set."""
    stop = stop_event or threading.Event()
    if threading.current_thread() is threading.main_thread():
        signal.signal(signal.SIGTERM, lambda *_: stop.set())

    service.tls.reload()
    listener = service.tls.listener
    if listener is not None:
        host, port = listener.address
        print(f"Serving on https://{host}:{port}", flush=True)

    try:
        while not stop.wait(1.0):
            pass
    except KeyboardInterrupt:
        logger.info("Interrupted")
    finally:
        service.tls.stop()
        logger.info("Listener stopped")
