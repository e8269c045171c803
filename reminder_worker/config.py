import os
from pathlib import Path
from dotenv import load_dotenv

current_file_path = Path(__file__).resolve()
root_dir = current_file_path.parent.parent
env_path = root_dir / ".env.dev"

if env_path.exists():
    load_dotenv(dotenv_path=env_path, override=True)
else:
    load_dotenv()


def _int_env(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, default))
    except ValueError:
        return default


class WorkerConfig:
    def __init__(self) -> None:
        self.INTERNAL_API_URL = os.getenv("INTERNAL_API_URL", "http://localhost:8000/internals")
        self.METRICS_PORT = _int_env("WORKER_METRICS_PORT", 9101)
        self.LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()


config = WorkerConfig()
