#!/usr/bin/env python3
"""
Azure CLI runner for the bootstrap scripts.

Every command is logged before it runs and the first non-zero exit aborts the
whole sequence. There is no retry and no partial-failure recovery.
"""

import json
import shlex
import logging
import subprocess
import time
from typing import Any, Callable, Iterable

logger = logging.getLogger(__name__)

OUTPUT_FLAGS = ("--output", "-o")


class AzCliError(RuntimeError):
    """An az invocation exited non-zero (or az is not installed)."""

    def __init__(self, command: str, returncode: int, stderr: str = ""):
        self.command = command
        self.returncode = returncode
        self.stderr = stderr
        super().__init__(f"'{command}' failed with exit code {returncode}: {stderr.strip()}")


class AzCli:
    """
    Thin wrapper around the az executable.

    runner and sleep are injectable so the bootstrap sequences can be
    exercised without a cloud account.
    """

    def __init__(
        self,
        dry_run: bool = False,
        runner: Callable[..., subprocess.CompletedProcess] = subprocess.run,
        sleep: Callable[[float], None] = time.sleep,
        executable: str = "az",
        redact: Iterable[str] = (),
    ):
        self.dry_run = dry_run
        self.runner = runner
        self.sleep = sleep
        self.executable = executable
        self.redact = set(redact)
        self.history = []

    def add_secret(self, value: str):
        """Mask value in every command line logged from now on."""
        if value:
            self.redact.add(value)

    def _display(self, argv) -> str:
        line = shlex.join(argv)
        for secret in self.redact:
            line = line.replace(secret, "****")
        return line

    def run(self, *args: str) -> str:
        argv = [self.executable, *args]
        display = self._display(argv)
        logger.info(f"+ {display}")
        self.history.append(display)

        if self.dry_run:
            return ""

        try:
            result = self.runner(argv, capture_output=True, text=True, check=False)
        except FileNotFoundError:
            raise AzCliError(display, 127, f"{self.executable}: command not found")

        if result.returncode != 0:
            raise AzCliError(display, result.returncode, result.stderr or "")
        # az on Windows/WSL leaves carriage returns in tsv output
        return (result.stdout or "").replace("\r", "").strip()

    def run_json(self, *args: str) -> Any:
        if not any(flag in args for flag in OUTPUT_FLAGS):
            args = (*args, "--output", "json")
        output = self.run(*args)
        if not output:
            return {}
        return json.loads(output)

    def wait(self, seconds: float, reason: str):
        logger.info(f"Waiting {seconds}s: {reason}")
        if not self.dry_run:
            self.sleep(seconds)
