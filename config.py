import os

# Base directories
BASE_DIR = os.path.dirname(os.path.abspath(__file__))

# Paths
STATIC_DIR = os.path.join(BASE_DIR, "static")
SESSION_DIR = os.getenv("SESSION_DIR", os.path.join(BASE_DIR, "data", "sessions"))
LOG_FILE = os.getenv("LOG_FILE", os.path.join(os.path.dirname(SESSION_DIR), "exam_engine.log"))

# Server
DEFAULT_HOST = os.getenv("HOST", "127.0.0.1")
DEFAULT_PORT = int(os.getenv("PORT", "8000"))
SERVER_READY_TIMEOUT = 15.0
SESSION_TTL = int(os.getenv("SESSION_TTL", "3600"))  # 1 hour

# External services (empty → bundled in-memory backends)
QUESTION_BANK_URL = os.getenv("QUESTION_BANK_URL", "")
RESULT_STORE_URL = os.getenv("RESULT_STORE_URL", "")
HTTP_TIMEOUT = float(os.getenv("HTTP_TIMEOUT", "15"))

# Exam policy
FREEZING_PERIOD_DAYS = float(os.getenv("FREEZING_PERIOD_DAYS", "1"))
PASS_PERCENTAGE = 60.0
DEFAULT_DURATION_MINUTES = 60
DEFAULT_POINTS = 10
MIN_CODE_LENGTH = 50        # shorter coding answers are not scored
TICK_INTERVAL_SECONDS = 1.0
