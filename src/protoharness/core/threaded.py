"""
=============================================================================
THREAD-PER-LISTENER ENGINE
=============================================================================

One dedicated worker thread per bound socket, each sitting in a blocking
accept() (or recvfrom()) loop. The calling thread just waits for errors.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                      ThreadedEngine.run()                           │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                     │
    │   StreamWorker-0      StreamWorker-1      DatagramWorker-2          │
    │   accept() :9         accept() :9999      recvfrom() :13            │
    │        │                   │                   │                    │
    │        │      ┌────────────┴────────────┐      │                    │
    │        └─────►│  GuardedFactory (Lock)  │◄─────┘                    │
    │               │  connection_made()      │  one at a time            │
    │               └────────────┬────────────┘                           │
    │                            │                                        │
    │         handler hooks run WITHOUT the lock (concurrently)           │
    │                            │                                        │
    │        any exception ──────┴──────► errors: queue.Queue             │
    │                                          │                          │
    │   caller thread:  run() ── errors.get() ─┘  raise the first one     │
    │                                                                     │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
FAILURE POLICY: REPORT AND ABANDON
=============================================================================

A failing connection (accept error, handshake on an already-reset peer,
factory or hook exception) is reported once on the shared queue and the
worker moves on to the next connection.

run() raises the FIRST error it receives and returns control to the
caller. It does not stop, join, or signal the workers: they are daemon
threads and keep serving until the process exits. Later errors stay in
the queue unobserved. This is a best-effort mode without graceful
shutdown; callers who need more should exit the process on error.

=============================================================================
"""

import queue
import socket
import logging
import threading
from typing import Any, List, Optional, Sequence

from ..config import HarnessConfig
from .handshake import format_address
from .handler import Factory, Handler, as_factory, as_handler, serve_datagram, serve_stream
from .sender import Sender


logger = logging.getLogger(__name__)


class GuardedFactory:
    """
    A factory shared by every worker, behind a mutex.

    connection_made() calls are serialized with respect to each other.
    Nothing else is: the handler it returns runs outside the lock.
    """

    def __init__(self, factory: Factory):
        self._factory = factory
        self._lock = threading.Lock()

    def connection_made(self, sender: Sender) -> Handler:
        with self._lock:
            return as_handler(self._factory.connection_made(sender))


class _Worker(threading.Thread):
    """
    Base class for listener workers.

    daemon=True: workers never keep the process alive on their own, and
    nothing joins them.
    """

    def __init__(self, sock: socket.socket, factory: GuardedFactory,
                 errors: "queue.Queue[BaseException]", worker_id: int):
        super().__init__(name=f"{type(self).__name__}-{worker_id}", daemon=True)

        self.sock = sock
        self.factory = factory
        self.errors = errors
        self.worker_id = worker_id

        # Metrics
        self.served = 0
        self.failed = 0

    @property
    def address(self) -> str:
        try:
            return format_address(self.sock.getsockname())
        except OSError:
            return "<closed>"

    @property
    def listener_closed(self) -> bool:
        return self.sock.fileno() == -1

    def _report(self, error: BaseException) -> None:
        """Log a failure and queue it for run(). The worker keeps going."""
        self.failed += 1
        logger.error(f"{self.name} failed on {self.address}: {error!r}")
        self.errors.put(error)


class StreamWorker(_Worker):
    """Blocking accept loop; each connection's full cycle runs on this thread."""

    def run(self):
        logger.debug(f"{self.name} accepting on {self.address}")

        while True:
            try:
                conn, _client_address = self.sock.accept()
            except OSError as e:
                if self.listener_closed:
                    logger.info(f"{self.name} listener closed, stopping")
                    break
                self._report(e)
                continue

            try:
                serve_stream(conn, self.factory.connection_made)
                self.served += 1
            except Exception as e:
                self._report(e)


class DatagramWorker(_Worker):
    """
    recvfrom() loop. Every datagram is its own cycle, replying to its origin.
    """

    def __init__(self, sock: socket.socket, factory: GuardedFactory,
                 errors: "queue.Queue[BaseException]", worker_id: int,
                 buffer_size: int = 1024):
        super().__init__(sock, factory, errors, worker_id)
        self.buffer_size = buffer_size

    def run(self):
        logger.debug(f"{self.name} receiving on {self.address}")

        while True:
            try:
                _payload, origin = self.sock.recvfrom(self.buffer_size)
                serve_datagram(self.sock, origin, self.factory.connection_made)
                self.served += 1
            except Exception as e:
                if self.listener_closed:
                    logger.info(f"{self.name} socket closed, stopping")
                    break
                self._report(e)


class ThreadedEngine:
    """
    Serves every bound socket concurrently, one worker thread each.

    Usage:
        engine = Builder().bind(":9").bind(":9999").build(factory)
        engine.run()  # blocks; raises the first worker error
    """

    def __init__(
        self,
        listeners: Sequence[socket.socket],
        factory: Any,
        datagram_sockets: Sequence[socket.socket] = (),
        config: Optional[HarnessConfig] = None,
    ):
        self.config = config or HarnessConfig()

        self._listeners = tuple(listeners)
        self._datagram_sockets = tuple(datagram_sockets)
        self._factory = GuardedFactory(as_factory(factory))

        # Multi-producer (workers), single-consumer (run)
        self._errors: "queue.Queue[BaseException]" = queue.Queue()

        self._workers: List[_Worker] = []
        self._started = False

    @property
    def listeners(self):
        return self._listeners

    @property
    def datagram_sockets(self):
        return self._datagram_sockets

    @property
    def workers(self) -> List[_Worker]:
        return list(self._workers)

    @property
    def pending_errors(self) -> int:
        """Errors queued but not observed by run()."""
        return self._errors.qsize()

    def start(self) -> None:
        """
        Spawn one worker per bound socket without blocking.

        run() calls this itself; it is public for callers that want to wait
        for errors on their own terms via wait_error().
        """
        if self._started:
            raise RuntimeError("engine already started")
        self._started = True

        worker_id = 0
        for listener in self._listeners:
            self._workers.append(StreamWorker(listener, self._factory, self._errors, worker_id))
            worker_id += 1

        for sock in self._datagram_sockets:
            self._workers.append(DatagramWorker(
                sock, self._factory, self._errors, worker_id,
                buffer_size=self.config.datagram_buffer_size,
            ))
            worker_id += 1

        if not self._workers:
            logger.warning("No sockets bound; run() will wait forever")

        for worker in self._workers:
            worker.start()

        logger.info(f"Threaded engine started with {len(self._workers)} workers")

    def wait_error(self, timeout: Optional[float] = None) -> Optional[BaseException]:
        """
        Block until a worker reports an error and return it.

        Returns None if ``timeout`` expires first.
        """
        try:
            return self._errors.get(timeout=timeout)
        except queue.Empty:
            return None

    def run(self) -> None:
        """
        Start the workers and block until the first error, then raise it.

        Never returns normally. Workers are left running after the raise.
        """
        self.start()

        error = self.wait_error()
        logger.error(f"Threaded engine stopping on first error: {error!r}")
        raise error
