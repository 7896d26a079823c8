"""Configuration module for the corpus ingestion engine."""
import os
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Storage Configuration
DATA_DIR = Path(os.getenv("DATA_DIR", "./data"))
CHECKPOINT_FILENAME = ".progress.json"
PROGRESS_REPORT_FILENAME = "progress.md"
RUN_LOG_FILENAME = "ingest.log"

# Fetching / Rate Limiting
FETCH_RATE_LIMIT_SECONDS = float(os.getenv("FETCH_RATE_LIMIT_SECONDS", "0.3"))  # Min gap between requests
FETCH_MAX_RETRIES = int(os.getenv("FETCH_MAX_RETRIES", "5"))
FETCH_BASE_DELAY_SECONDS = float(os.getenv("FETCH_BASE_DELAY_SECONDS", "2.0"))
FETCH_TIMEOUT_SECONDS = float(os.getenv("FETCH_TIMEOUT_SECONDS", "30"))
USER_AGENT = os.getenv(
    "USER_AGENT",
    "corpus-ingest/0.1 (+https://github.com/corpus-ingest/corpus-ingest)"
)

# Chunking Configuration
NOISE_FLOOR_CHARS = 20        # Chunks shorter than this are discarded
REMAINDER_FLOOR_CHARS = 50    # A lone undersized remainder is kept only above this
OVERLAP_CHARS_PER_WORD = 5    # overlap (chars) // this = words carried into the next chunk
CASCADE_MIN_YIELD = int(os.getenv("CASCADE_MIN_YIELD", "10"))

# Character windows per chunking form
CHUNK_TARGETS = {
    "prose": {"min": 200, "target": 400, "max": 600, "overlap": 50},  # ~10-word bridge
    "poetry": {"min": 150, "target": 300, "max": 500, "overlap": 0},
    "dialogue": {"min": 100, "target": 350, "max": 600, "overlap": 0},
    "drama": {"min": 100, "target": 300, "max": 500, "overlap": 0},
    "numbered-verses": {"min": 15, "target": 400, "max": 2000, "overlap": 0},
    "numbered-sections": {"min": 20, "target": 400, "max": 2000, "overlap": 0},
    "pre-formatted": {"min": 40, "target": 400, "max": 2000, "overlap": 0},
}

# Combined output
COMBINED_DIR = DATA_DIR / "combined"
