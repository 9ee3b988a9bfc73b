import os
from pathlib import Path


def _project_env_path() -> Path:
    custom = os.getenv("CAPSTREAM_ENV_FILE", "").strip()
    if custom:
        return Path(custom)
    return Path(__file__).resolve().parents[2] / ".env"


def load_project_env(override: bool = False) -> None:
    env_file = _project_env_path()
    if not env_file.exists():
        return

    for raw_line in env_file.read_text(encoding="utf-8-sig").splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue

        key, value = line.split("=", 1)
        key = key.strip()
        value = value.strip()
        if key.startswith("export "):
            key = key[len("export "):].strip()
        if not key:
            continue

        if (value.startswith('"') and value.endswith('"')) or (
            value.startswith("'") and value.endswith("'")
        ):
            value = value[1:-1]

        if override or key not in os.environ:
            os.environ[key] = value
