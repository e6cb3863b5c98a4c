import os
from pathlib import Path

from .constants import DATA_DIR, DB_FILE_NAME

BASE_DIR = Path(__file__).resolve().parent
DATA_PATH = Path(os.getenv("RETAIL_POS_DATA_DIR", str(BASE_DIR / DATA_DIR)))
DB_PATH = Path(os.getenv("RETAIL_POS_DB_PATH", str(DATA_PATH / DB_FILE_NAME)))
# refund / exchange event log (JSON lines); unset means stderr only
EVENT_LOG_PATH = os.getenv("RETAIL_POS_EVENT_LOG") or None
