"""Backend language server process handle.

Each handle owns one spawned language server together with the two threads
that talk to it: a writer that forwards broadcast client messages to the
server's stdin, and a reader that decodes the server's stdout into a bounded
output queue.
"""

import enum
import logging
import queue
import subprocess
import threading
from typing import Any, Optional

from lspmux.broadcast import DEFAULT_CAPACITY, Subscription
from lspmux.config import BackendSpec, LagPolicy
from lspmux.exceptions import BackendSpawnError, ChannelClosed, Lagged
from lspmux.framing import read_message, write_message
from lspmux.tasks import TaskExit, TaskExitCallback, TaskRole

# Queued by the reader after the server's last message
END_OF_STREAM = object()

# Seconds between checks for an abandoned output queue
ENQUEUE_POLL_INTERVAL = 0.1


class BackendState(enum.Enum):
    SPAWNING = "spawning"
    RUNNING = "running"
    TERMINATED = "terminated"


class BackendProcess:
    """Manages one language server process and its I/O threads."""

    def __init__(
        self,
        spec: BackendSpec,
        capacity: int = DEFAULT_CAPACITY,
        lag_policy: LagPolicy = LagPolicy.STOP,
    ):
        """Initialize the backend handle.

        Args:
            spec: The language server to launch.
            capacity: Maximum number of server messages buffered before the
                reader stops reading from the server.
            lag_policy: What the writer does when it falls behind the client.
        """
        self.spec = spec
        self.lag_policy = lag_policy
        self.logger = logging.getLogger(f"lspmux.servers.{spec.name}")
        self.state = BackendState.SPAWNING
        self.server_process: Optional[subprocess.Popen] = None

        self.output_queue: "queue.Queue[Any]" = queue.Queue(maxsize=capacity)
        self.reader_thread: Optional[threading.Thread] = None
        self.writer_thread: Optional[threading.Thread] = None
        self._on_exit: Optional[TaskExitCallback] = None
        self._output_abandoned = threading.Event()

    @property
    def name(self) -> str:
        return self.spec.name

    @property
    def pid(self) -> Optional[int]:
        return self.server_process.pid if self.server_process else None

    def is_running(self) -> bool:
        """Check if the language server process is alive.

        Returns:
            True if the server is running, False otherwise.
        """
        return self.server_process is not None and self.server_process.poll() is None

    def start(self, subscription: Subscription, on_exit: Optional[TaskExitCallback] = None) -> None:
        """Spawn the language server and start its reader and writer threads.

        Args:
            subscription: Broadcast subscription the writer drains.
            on_exit: Called from each thread when it stops.

        Raises:
            BackendSpawnError: If the process could not be launched.
        """
        argv = self.spec.argv
        self.logger.info(f"Starting language server '{self.name}' with command: {' '.join(argv)}")
        try:
            # stderr is inherited, never read
            self.server_process = subprocess.Popen(
                argv,
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
            )
        except OSError as e:
            self.state = BackendState.TERMINATED
            self.logger.error(f"Failed to start language server '{self.name}': {e}")
            raise BackendSpawnError(self.name, argv, e) from e

        self.state = BackendState.RUNNING
        self._on_exit = on_exit
        self.logger.info(f"Language server '{self.name}' started with pid {self.pid}")

        self.reader_thread = threading.Thread(
            target=self._lsp_reader,
            daemon=True,
            name=f"{self.name}-lsp-reader",
        )
        self.reader_thread.start()

        self.writer_thread = threading.Thread(
            target=self._lsp_writer,
            args=(subscription,),
            daemon=True,
            name=f"{self.name}-lsp-writer",
        )
        self.writer_thread.start()

    def stop(self, timeout: float = 5.0) -> None:
        """Stop the language server.

        The writer closes the server's stdin once the broadcast channel is
        closed, which lets a well-behaved server exit on its own. A server
        that is still alive after ``timeout`` seconds is terminated, then
        killed.

        Args:
            timeout: Seconds to wait at each stage.
        """
        if self.server_process is None or self.state is BackendState.TERMINATED:
            self.state = BackendState.TERMINATED
            return

        # A writer stuck on a full pipe is released when the server dies below
        if self.writer_thread and self.writer_thread.is_alive():
            self.writer_thread.join(timeout=timeout)

        try:
            self.server_process.wait(timeout=timeout)
        except subprocess.TimeoutExpired:
            self.logger.warning(f"Language server '{self.name}' did not exit, terminating")
            self.server_process.terminate()
            try:
                self.server_process.wait(timeout=timeout)
            except subprocess.TimeoutExpired:
                self.logger.warning(f"Language server '{self.name}' did not terminate, forcing kill")
                self.server_process.kill()
                self.server_process.wait()

        if self.reader_thread and self.reader_thread.is_alive():
            self.reader_thread.join(timeout=timeout)

        self.state = BackendState.TERMINATED
        self.logger.info(
            f"Language server '{self.name}' stopped with exit code {self.server_process.returncode}"
        )

    def _lsp_writer(self, subscription: Subscription) -> None:
        """Forward broadcast client messages to the server's stdin."""
        stdin = self.server_process.stdin
        error: Optional[BaseException] = None

        try:
            while True:
                try:
                    message = subscription.recv()
                except Lagged as e:
                    if self.lag_policy is LagPolicy.RESYNC:
                        self.logger.warning(
                            f"Language server '{self.name}' missed {e.missed} client message(s), resyncing"
                        )
                        continue
                    raise

                size = write_message(stdin, message.payload)
                self.logger.debug(f"Sent {size} bytes to '{self.name}'")

        except ChannelClosed:
            self.logger.debug(f"Client channel closed, closing stdin of '{self.name}'")
        except Lagged as e:
            self.logger.error(
                f"Language server '{self.name}' fell behind the client and will receive no more messages: {e}"
            )
            error = e
        except Exception as e:
            self.logger.error(f"Error writing to language server '{self.name}': {e}")
            error = e
        finally:
            self._close_stream(stdin)
            self._report(TaskRole.WRITER, error)

    def _lsp_reader(self) -> None:
        """Read messages from the server's stdout into the output queue."""
        stdout = self.server_process.stdout
        error: Optional[BaseException] = None

        try:
            while True:
                message = read_message(stdout)
                if message is None:
                    self.logger.info(f"Language server '{self.name}' closed its output stream")
                    break

                self.logger.debug(f"Received {message.size} bytes from '{self.name}'")
                if not self._enqueue(message):
                    break

        except Exception as e:
            self.logger.error(f"Error reading from language server '{self.name}': {e}")
            error = e
        finally:
            self._enqueue(END_OF_STREAM)
            self._close_stream(stdout)
            self._report(TaskRole.READER, error)

    def abandon_output(self) -> None:
        """Tell the reader that nothing drains the output queue any more."""
        self._output_abandoned.set()

    def _enqueue(self, item: Any) -> bool:
        """Put an item on the output queue, blocking while it is full.

        Returns:
            False if the queue was abandoned while full.
        """
        while True:
            try:
                self.output_queue.put(item, timeout=ENQUEUE_POLL_INTERVAL)
                return True
            except queue.Full:
                if self._output_abandoned.is_set():
                    self.logger.debug(f"Output of '{self.name}' is no longer consumed, discarding")
                    return False

    def _report(self, role: TaskRole, error: Optional[BaseException]) -> None:
        if self._on_exit is not None:
            self._on_exit(TaskExit(role=role, backend=self.name, error=error))

    def _close_stream(self, stream: Any) -> None:
        if stream is None or stream.closed:
            return
        try:
            stream.close()
        except OSError as e:
            # Flushing into a dead server's pipe
            self.logger.debug(f"Error closing stream of '{self.name}': {e}")
