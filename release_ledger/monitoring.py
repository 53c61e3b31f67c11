"""
Prometheus metrics for a token deployment.
"""
import logging
import socket
import threading
import time
from socketserver import ThreadingMixIn
from wsgiref.simple_server import make_server, WSGIServer

import psutil
from prometheus_client import Counter, Gauge, Histogram, CollectorRegistry
from prometheus_client.exposition import make_wsgi_app

from release_ledger.events import Event, TRANSFER, RELEASED

logger = logging.getLogger(__name__)


class ThreadingWSGIServer(ThreadingMixIn, WSGIServer):
    """Serves metrics from worker threads so scrapes never block the token."""
    allow_reuse_address = True
    daemon_threads = True


class Monitor:
    def __init__(self, token, host="127.0.0.1", port=9090, serve=True):
        self.token = token
        self.host = host
        self.port = port
        self.server = None
        self.thread = None

        # Isolated registry per token
        self.registry = CollectorRegistry()

        self.release_attempts = Counter(
            'release_attempts_total', 'Release calls by outcome', ['outcome'], registry=self.registry)
        self.release_latency = Histogram(
            'release_latency_seconds', 'Time spent in release calls', registry=self.registry)
        self.transfers = Counter(
            'token_transfers_total', 'Ledger transfers committed', registry=self.registry)
        self.custodial_balance = Gauge(
            'token_custodial_balance', 'Units held in custody', registry=self.registry)
        self.released = Gauge(
            'token_released', '1 once the custodial balance has been released', registry=self.registry)
        self.total_supply = Gauge(
            'token_total_supply', 'Fixed total supply', registry=self.registry)
        self.cpu_usage = Gauge('system_cpu_percent', 'Current CPU usage percent', registry=self.registry)
        self.memory_usage = Gauge('system_memory_percent', 'Current memory usage percent', registry=self.registry)

        token.monitor = self
        token.events.subscribe(self.on_event)
        # Gauges start from the current state; a restored token may already be RELEASED
        self.update()

        if serve:
            self.start_server()

    @classmethod
    def from_config(cls, token, config, serve=True):
        """
        Attach a monitor as described by a `release_ledger.config.MonitoringConfig`.
        Returns None when monitoring is disabled.
        """
        if not config.enabled:
            return None
        return cls(token, host=config.host, port=config.port, serve=serve)

    def start_server(self, max_retries=5, retry_delay=2):
        """Starts the metrics HTTP server in a daemon thread, retrying while the port is busy."""
        app = make_wsgi_app(self.registry)

        for attempt in range(max_retries):
            try:
                self.server = make_server(self.host, self.port, app, ThreadingWSGIServer)
                self.server.socket.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)

                self.thread = threading.Thread(target=self.server.serve_forever)
                self.thread.daemon = True
                self.thread.start()
                logger.info(f"Prometheus server started on http://{self.host}:{self.port}")
                return
            except OSError as e:
                if e.errno == 98 and attempt < max_retries - 1:  # Address already in use
                    logger.warning(
                        f"Port {self.port} in use, retrying in {retry_delay}s "
                        f"(attempt {attempt + 1}/{max_retries})..."
                    )
                    time.sleep(retry_delay)
                else:
                    logger.error(f"Failed to bind metrics server to port {self.port}: {e}")
                    raise

    def stop_server(self):
        if self.server:
            self.server.shutdown()
            self.server.server_close()
            self.server = None
            logger.info("Prometheus server stopped.")

    def update(self):
        self.custodial_balance.set(self.token.custodial_balance)
        self.released.set(1 if self.token.released else 0)
        self.total_supply.set(self.token.total_supply)
        self.cpu_usage.set(psutil.cpu_percent())
        self.memory_usage.set(psutil.virtual_memory().percent)

    def on_event(self, event: Event):
        if event.name == TRANSFER:
            self.transfers.inc()
        elif event.name == RELEASED:
            self.custodial_balance.set(self.token.custodial_balance)
            self.released.set(1)

    def record_release(self, outcome: str, latency: float):
        self.release_attempts.labels(outcome=outcome).inc()
        self.release_latency.observe(latency)
