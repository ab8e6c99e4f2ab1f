from dotenv import load_dotenv
import os
from pathlib import Path

# Load .env from the working directory once, when this file is imported
env_path = Path.cwd() / ".env"
load_dotenv(dotenv_path=env_path)

DEFAULT_SQLITE_URL = "sqlite:///stockledger.db"

DATABASE_CONFIG = {
    "user": os.getenv("DB_USER"),
    "password": os.getenv("DB_PASS"),
    "host": os.getenv("DB_HOST"),
    "port": os.getenv("DB_PORT"),
    "dbname": os.getenv("DB_NAME"),
    "url": os.getenv("DB_URL"),
    "echo": os.getenv("DB_ECHO", "false").lower() in ("1", "true", "yes"),
}
