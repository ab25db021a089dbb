from __future__ import annotations

from dataclasses import dataclass
import os
from pathlib import Path
import sys


class ConfigurationError(ValueError):
    pass


VALID_TRANSPORT_MODES = ("auto", "bridge", "network")


@dataclass(frozen=True)
class AppSettings:
    base_url: str
    transport_mode: str
    login_path: str
    timeout_seconds: int
    session_cookie_name: str
    session_cache_path: str
    import_delay_seconds: float
    min_password_length: int
    ready_timeout_seconds: float

    @staticmethod
    def from_env() -> "AppSettings":
        _load_dotenv_if_present()

        base_url = os.getenv("RELAY_BASE_URL", "http://127.0.0.1:8045").strip().rstrip("/")
        transport_mode = os.getenv("RELAY_TRANSPORT", "auto").strip().lower()
        login_path = os.getenv("RELAY_LOGIN_PATH", "/login").strip()

        timeout_seconds = int(os.getenv("RELAY_TIMEOUT_SECONDS", "30"))
        session_cookie_name = os.getenv("RELAY_SESSION_COOKIE", "ag_session").strip()

        default_cache_path = os.path.join(
            os.getenv("XDG_STATE_HOME", os.getcwd()),
            "RelayConsole",
            "session.bin",
        )
        session_cache_path = os.getenv("RELAY_SESSION_CACHE_PATH", default_cache_path)

        import_delay_seconds = int(os.getenv("RELAY_IMPORT_DELAY_MS", "100")) / 1000.0
        min_password_length = int(os.getenv("RELAY_MIN_PASSWORD_LENGTH", "6"))
        ready_timeout_seconds = float(os.getenv("RELAY_READY_TIMEOUT_SECONDS", "1"))

        settings = AppSettings(
            base_url=base_url,
            transport_mode=transport_mode,
            login_path=login_path,
            timeout_seconds=timeout_seconds,
            session_cookie_name=session_cookie_name,
            session_cache_path=session_cache_path,
            import_delay_seconds=import_delay_seconds,
            min_password_length=min_password_length,
            ready_timeout_seconds=ready_timeout_seconds,
        )
        settings.validate()
        return settings

    def validate(self) -> None:
        problems = []
        if not self.base_url.startswith(("http://", "https://")):
            problems.append("RELAY_BASE_URL must start with http:// or https://")

        if self.transport_mode not in VALID_TRANSPORT_MODES:
            problems.append("RELAY_TRANSPORT must be one of: " + ", ".join(VALID_TRANSPORT_MODES))

        if not self.login_path.startswith("/"):
            problems.append("RELAY_LOGIN_PATH must start with '/'")

        if self.timeout_seconds <= 0:
            problems.append("RELAY_TIMEOUT_SECONDS must be greater than 0")

        if not self.session_cookie_name:
            problems.append("RELAY_SESSION_COOKIE must not be empty")

        if self.import_delay_seconds < 0:
            problems.append("RELAY_IMPORT_DELAY_MS must be 0 or greater")

        if self.min_password_length < 1:
            problems.append("RELAY_MIN_PASSWORD_LENGTH must be at least 1")

        if self.ready_timeout_seconds <= 0:
            problems.append("RELAY_READY_TIMEOUT_SECONDS must be greater than 0")

        if problems:
            raise ConfigurationError("Invalid settings: " + "; ".join(problems))


def _load_dotenv_if_present(file_name: str = ".env") -> None:
    for candidate in _candidate_env_files(file_name):
        _load_env_file(candidate)


def _candidate_env_files(file_name: str) -> list[Path]:
    candidates: list[Path] = []

    explicit = os.getenv("RELAY_ENV_FILE", "").strip()
    if explicit:
        candidates.append(Path(explicit).expanduser())

    candidates.append(Path.cwd() / file_name)

    if getattr(sys, "frozen", False):
        exe_dir = Path(sys.executable).resolve().parent
        candidates.append(exe_dir / file_name)
    else:
        project_root = Path(__file__).resolve().parent.parent
        candidates.append(project_root / file_name)

    unique_candidates: list[Path] = []
    seen: set[str] = set()
    for path in candidates:
        normalized = str(path.resolve()) if path.exists() else str(path)
        if normalized in seen:
            continue
        seen.add(normalized)
        unique_candidates.append(path)
    return unique_candidates


def _load_env_file(path: Path) -> None:
    if not path.exists():
        return

    try:
        with path.open("r", encoding="utf-8") as env_file:
            for raw_line in env_file:
                line = raw_line.strip()
                if not line or line.startswith("#") or "=" not in line:
                    continue

                key, value = line.split("=", 1)
                key = key.strip()
                value = value.strip().strip('"').strip("'")

                if key and key not in os.environ:
                    os.environ[key] = value
    except OSError:
        return
