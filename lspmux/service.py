"""Main service module for the LSP multiplexer.

The multiplexer reads framed messages from the client, broadcasts each of
them to every configured language server, and writes everything the servers
send back onto the single client output stream.

Threads:
    client reader   client input -> broadcast channel
    <name> writer   broadcast subscription -> server stdin (one per server)
    <name> reader   server stdout -> bounded output queue (one per server)
    aggregator      output queues, in configuration order -> client output

The calling thread supervises: every worker posts a TaskExit when it stops,
and the supervisor decides whether the failure ends the whole process or
only silences one language server.
"""

import logging
import queue
import threading
from typing import Any, BinaryIO, List, Optional, Sequence

from lspmux.broadcast import DEFAULT_CAPACITY, BroadcastChannel
from lspmux.config import BackendSpec, LagPolicy, MuxConfig
from lspmux.exceptions import BackendSpawnError, LspMuxError
from lspmux.framing import read_message, write_message
from lspmux.servers import END_OF_STREAM, BackendProcess
from lspmux.tasks import TaskExit, TaskRole


class Multiplexer:
    """Fans client messages out to several language servers and fans their output back in."""

    def __init__(
        self,
        specs: Sequence[BackendSpec],
        input_stream: BinaryIO,
        output_stream: BinaryIO,
        channel_capacity: int = DEFAULT_CAPACITY,
        lag_policy: LagPolicy = LagPolicy.STOP,
        shutdown_timeout: float = 5.0,
    ):
        """Initialize the multiplexer.

        Args:
            specs: Language servers to launch, in aggregation order.
            input_stream: Binary stream the client writes to.
            output_stream: Binary stream the client reads from.
            channel_capacity: Broadcast history and per-server queue size.
            lag_policy: What a server's writer does when it falls behind.
            shutdown_timeout: Seconds to wait for each server on shutdown.
        """
        self.specs = tuple(specs)
        self.input_stream = input_stream
        self.output_stream = output_stream
        self.channel_capacity = channel_capacity
        self.lag_policy = lag_policy
        self.shutdown_timeout = shutdown_timeout
        self.logger = logging.getLogger("lspmux.service")

        self.channel = BroadcastChannel(channel_capacity)
        self.backends: List[BackendProcess] = []
        self.task_exits: List[TaskExit] = []
        self.aggregator_thread: Optional[threading.Thread] = None
        self.client_thread: Optional[threading.Thread] = None

        self._exits: "queue.Queue[TaskExit]" = queue.Queue()
        self._started = False
        self._stopping = False

    @classmethod
    def from_config(cls, config: MuxConfig, input_stream: BinaryIO, output_stream: BinaryIO) -> "Multiplexer":
        return cls(
            config.languages,
            input_stream,
            output_stream,
            channel_capacity=config.channel_capacity,
            lag_policy=config.lag_policy,
            shutdown_timeout=config.shutdown_timeout,
        )

    def start(self) -> None:
        """Launch every language server and the aggregator.

        Raises:
            LspMuxError: If no language servers are configured.
            BackendSpawnError: If any server fails to launch. Servers that
                were already launched are stopped first.
        """
        if self._started:
            raise RuntimeError("Multiplexer already started")
        if not self.specs:
            raise LspMuxError("No language servers configured")
        self._started = True

        # Subscribe everyone before the first client message is published
        subscriptions = [self.channel.subscribe() for _ in self.specs]

        try:
            for spec, subscription in zip(self.specs, subscriptions):
                backend = BackendProcess(spec, capacity=self.channel_capacity, lag_policy=self.lag_policy)
                backend.start(subscription, on_exit=self._exits.put)
                self.backends.append(backend)
        except BackendSpawnError:
            self.shutdown()
            raise

        self.aggregator_thread = threading.Thread(
            target=self._aggregate,
            daemon=True,
            name="lsp-aggregator",
        )
        self.aggregator_thread.start()
        self.logger.info(f"Multiplexing {len(self.backends)} language server(s)")

    def run(self) -> None:
        """Serve the client until it closes its input stream.

        Raises:
            BackendSpawnError: If a language server could not be launched.
                Nothing is read from the client in that case.
            Exception: Whatever error ended the client-facing streams.
        """
        self.start()

        self.client_thread = threading.Thread(
            target=self._read_client,
            daemon=True,
            name="lsp-client-reader",
        )
        self.client_thread.start()

        try:
            error = self._supervise()
        finally:
            self.shutdown()

        if error is not None:
            raise error

    def shutdown(self) -> None:
        """Stop every language server. Safe to call more than once."""
        if self._stopping:
            return
        self._stopping = True
        self.logger.info("Shutting down")

        self.channel.close()
        for backend in self.backends:
            backend.stop(timeout=self.shutdown_timeout)

        if self.aggregator_thread and self.aggregator_thread.is_alive():
            self.aggregator_thread.join(timeout=self.shutdown_timeout)

        while True:
            try:
                task_exit = self._exits.get_nowait()
            except queue.Empty:
                break
            self._record(task_exit)

    def _supervise(self) -> Optional[BaseException]:
        """Wait for worker exits until one of them ends the session.

        Returns:
            The fatal error, or None if the client closed its input cleanly.
        """
        while True:
            task_exit = self._exits.get()
            self._record(task_exit)

            if task_exit.role is TaskRole.CLIENT:
                if task_exit.failed:
                    return task_exit.error
                self.logger.info("Client closed its input stream")
                return None

            if task_exit.role is TaskRole.AGGREGATOR and task_exit.failed:
                return task_exit.error

    def _record(self, task_exit: TaskExit) -> None:
        self.task_exits.append(task_exit)
        if not task_exit.failed:
            self.logger.debug(task_exit.describe())
        elif task_exit.backend is None:
            self.logger.error(task_exit.describe())
        else:
            self.logger.warning(f"{task_exit.describe()}; other language servers are unaffected")

    def _read_client(self) -> None:
        """Broadcast every client message until the client input closes."""
        error: Optional[BaseException] = None
        try:
            while True:
                message = read_message(self.input_stream)
                if message is None:
                    break
                count = self.channel.publish(message)
                self.logger.debug(f"Broadcast client message to {count} language server(s)")
        except Exception as e:
            self.logger.error(f"Error reading from client: {e}")
            error = e
        finally:
            self._exits.put(TaskExit(role=TaskRole.CLIENT, error=error))

    def _aggregate(self) -> None:
        """Relay server output to the client.

        Servers are visited in configuration order with one blocking dequeue
        each per pass. A server whose reader has stopped drops out of the
        rotation.
        """
        active = list(self.backends)
        error: Optional[BaseException] = None
        try:
            while active:
                for backend in list(active):
                    message: Any = backend.output_queue.get()
                    if message is END_OF_STREAM:
                        active.remove(backend)
                        self.logger.info(f"Language server '{backend.name}' has no more output")
                        continue

                    size = write_message(self.output_stream, message.payload)
                    self.logger.debug(f"Relayed {size} bytes from '{backend.name}' to the client")

            if not self._stopping:
                self.logger.error("All language servers have stopped; the client will receive no more messages")
        except Exception as e:
            self.logger.error(f"Error writing to client: {e}")
            error = e
        finally:
            for backend in self.backends:
                backend.abandon_output()
            self._exits.put(TaskExit(role=TaskRole.AGGREGATOR, error=error))
