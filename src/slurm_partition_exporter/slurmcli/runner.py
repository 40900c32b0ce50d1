"""Slurm command runner.

Executes the Slurm inspection commands (sinfo, squeue) and returns their
raw standard output. Parsing and aggregation are handled by collector
modules.
"""

import subprocess
import time
from pathlib import Path

import structlog

logger = structlog.get_logger(__name__)

DEFAULT_TIMEOUT = 30.0

NODE_STATES_COMMAND = ("sinfo", "-h", "-o %D,%T,%P")
PARTITION_CPUS_COMMAND = ("sinfo", "-h", "-o%R,%C")
PENDING_JOBS_COMMAND = (
    "squeue",
    "-a",
    "-r",
    "-h",
    "-o%P,%C,%r,%f",
    "--states=PENDING",
)


class CommandError(RuntimeError):
    """Raised when a Slurm command cannot produce its output."""

    def __init__(self, command: list[str], reason: str):
        self.command = command
        self.reason = reason
        super().__init__(f"Command {' '.join(command)!r} failed: {reason}")


class SlurmCommandRunner:
    """Runs Slurm commands and returns their captured stdout.

    Holds no state between calls besides its configuration, so a single
    instance can be shared by every collector and by overlapping scrapes.
    """

    def __init__(
        self,
        timeout: float = DEFAULT_TIMEOUT,
        bin_dir: str | Path | None = None,
    ):
        """Initialize the command runner.

        Args:
            timeout: Seconds to wait for a command before giving up.
            bin_dir: Optional directory holding the Slurm executables. When
                unset, executables are resolved through PATH.

        Raises:
            ValueError: If timeout is not positive.
        """
        if timeout <= 0:
            msg = "timeout must be positive"
            raise ValueError(msg)

        self._timeout = timeout
        self._bin_dir = Path(bin_dir) if bin_dir else None

    @property
    def description(self) -> str:
        """Human readable origin of the data, used in metric help texts."""
        if self._bin_dir is not None:
            return f"slurm commands in {self._bin_dir}"
        return "slurm commands"

    def _resolve(self, command: tuple[str, ...]) -> list[str]:
        executable, *args = command
        if self._bin_dir is not None:
            executable = str(self._bin_dir / executable)
        return [executable, *args]

    def run(self, command: tuple[str, ...]) -> str:
        """Run a command and return its standard output.

        Args:
            command: Executable name followed by its arguments.

        Returns:
            Captured standard output as text.

        Raises:
            CommandError: If the executable cannot be started, times out or
                exits with a non-zero status.
        """
        cmd = self._resolve(command)
        start_time = time.time()
        logger.debug("Running command", command=cmd)

        try:
            completed = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=self._timeout,
                check=True,
            )
        except FileNotFoundError as e:
            raise CommandError(cmd, f"executable {cmd[0]!r} not found") from e
        except subprocess.TimeoutExpired as e:
            raise CommandError(cmd, f"timed out after {self._timeout}s") from e
        except subprocess.CalledProcessError as e:
            stderr = (e.stderr or "").strip()
            raise CommandError(
                cmd, f"exit status {e.returncode}: {stderr}"
            ) from e

        duration = time.time() - start_time
        logger.debug(
            "Command completed",
            command=cmd[0],
            duration_seconds=round(duration, 3),
        )
        return completed.stdout

    def get_node_states(self) -> str:
        """Return `<count>,<state>,<partition>` lines from sinfo."""
        return self.run(NODE_STATES_COMMAND)

    def get_partition_cpus(self) -> str:
        """Return `<partition>,<alloc>/<idle>/<other>/<total>` lines from sinfo."""
        return self.run(PARTITION_CPUS_COMMAND)

    def get_pending_jobs(self) -> str:
        """Return `<partition>,<cpus>,<reason>,(<features>)` lines from squeue."""
        return self.run(PENDING_JOBS_COMMAND)
