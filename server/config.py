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


class ServerConfig:
    def __init__(self) -> None:
        self.DATABASE_URL = os.getenv("DATABASE_URL", "postgresql://postgres@localhost:5432/reminders")
        self.CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "http://localhost").split(",") if o.strip()]


config = ServerConfig()
