"""Environment compatibility and preflight checks for local setup."""

from __future__ import annotations

import os
import socket
import sys
from dataclasses import dataclass
from typing import List, Mapping, Optional, Tuple

from tars.config import Settings, load_settings
from tars.core.errors import ConfigurationError

MIN_PYTHON = (3, 10)


@dataclass
class DoctorResult:
    ok: bool
    messages: List[str]


def _python_version_tuple() -> Tuple[int, int, int]:
    v = sys.version_info
    return (v.major, v.minor, v.micro)


def _check_python_version(errors: List[str]) -> None:
    current = _python_version_tuple()
    if current[:2] < MIN_PYTHON:
        errors.append(
            f"Python {current[0]}.{current[1]} is unsupported. "
            f"Use Python {MIN_PYTHON[0]}.{MIN_PYTHON[1]} or newer."
        )


def _check_settings(env: Mapping[str, str], errors: List[str]) -> Optional[Settings]:
    try:
        return load_settings(env=env)
    except ConfigurationError as exc:
        hint = f" (see `{exc.error.param}`)" if exc.error.param else ""
        errors.append(f"Settings invalid: {exc.error.message}{hint}")
        return None


def _check_fallback_chain(settings: Settings, warnings: List[str]) -> None:
    if not settings.fallbacks:
        warnings.append(
            f"No fallback providers configured; every call depends on `{settings.primary}`."
        )

    chain = [settings.primary, *settings.fallbacks]
    unused = [d.key for d in settings.providers if d.key not in chain]
    if unused:
        warnings.append(f"Enabled but not in the fallback chain: {', '.join(unused)}.")


def _check_port_binding(env: Mapping[str, str], port: int, errors: List[str]) -> None:
    host = env.get("HOST", "127.0.0.1").strip() or "127.0.0.1"

    if not (0 < port < 65536):
        errors.append(f"PORT must be between 1 and 65535, got `{port}`.")
        return

    bind_host = "127.0.0.1" if host in {"0.0.0.0", "localhost", ""} else host
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    try:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind((bind_host, port))
    except OSError as exc:
        errors.append(
            f"PORT/HOST conflict: cannot bind {bind_host}:{port} ({exc}). "
            "Pick a free port, e.g. `PORT=5010 python -m tars.server`."
        )
    finally:
        sock.close()


def run_doctor(env: Optional[Mapping[str, str]] = None) -> DoctorResult:
    env_map: Mapping[str, str] = env or os.environ
    errors: List[str] = []
    warnings: List[str] = []

    _check_python_version(errors)
    settings = _check_settings(env_map, errors)
    if settings is not None:
        _check_fallback_chain(settings, warnings)
        _check_port_binding(env_map, settings.port, errors)

    messages: List[str] = []
    if errors:
        messages.append("Doctor found configuration issues:")
        for i, msg in enumerate(errors, 1):
            messages.append(f"{i}. {msg}")
        messages.append("Fix the items above and rerun `python scripts/doctor.py`.")
    else:
        messages.append("Doctor checks passed.")

    if warnings:
        messages.append("Warnings:")
        for i, msg in enumerate(warnings, 1):
            messages.append(f"- {msg}")

    return DoctorResult(ok=not errors, messages=messages)


def main() -> int:
    result = run_doctor()
    print("\n".join(result.messages))
    return 0 if result.ok else 1


if __name__ == "__main__":
    raise SystemExit(main())
