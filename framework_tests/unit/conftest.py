"""
Pytest configuration and fixtures for framework unit tests.
Keeps unit tests away from real processes, sockets and signals.
"""

import logging
from typing import Any, Dict, Generator, Tuple
from unittest.mock import patch

import pytest


@pytest.fixture(autouse=True)
def reset_global_state() -> Generator[None, None, None]:
    """Forget global configuration and logging setup after each test."""
    yield

    from resilience.core.config import reset_config
    from resilience.core.log import clear_log_context, reset_logging

    reset_config()
    reset_logging()
    clear_log_context()


@pytest.fixture(autouse=True)
def patch_dangerous_operations() -> Generator[Dict[str, Any], None, None]:
    """Patch potentially dangerous operations during unit tests.

    Threads are left alone: process handles and the cluster start rely on
    them and only ever run against mocks here.
    """
    with (
        patch("subprocess.Popen") as mock_popen,
        patch("socket.socket") as mock_socket,
        patch("os.kill") as mock_kill,
        patch("os.killpg") as mock_killpg,
        patch("psutil.Process") as mock_psutil_process,
    ):
        mock_subprocess = mock_popen.return_value
        mock_subprocess.pid = 12345
        mock_subprocess.poll.return_value = 0
        mock_subprocess.wait.return_value = 0
        mock_subprocess.returncode = 0
        mock_subprocess.stdout = None
        mock_subprocess.stderr = None

        mock_socket_instance = mock_socket.return_value.__enter__.return_value

        def mock_bind(addr: Tuple[str, int]) -> None:
            _host, port = addr
            if port < 1 or port > 65535:
                raise OSError(f"Invalid port: {port}")

        mock_socket_instance.bind.side_effect = mock_bind

        mock_psutil_process.return_value.pid = 12345

        yield {
            "popen": mock_popen,
            "socket": mock_socket,
            "kill": mock_kill,
            "killpg": mock_killpg,
            "psutil_process": mock_psutil_process,
        }


def pytest_sessionfinish(session: Any, exitstatus: int) -> None:
    """Called after whole test run finished."""
    logging.shutdown()
