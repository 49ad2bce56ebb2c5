"""
Configuration constants for the media indexer.
"""

# --- Directory Classification ---
# Case-insensitive substrings matched against top-level folder names.
DIRECTORY_KEYWORDS = {
    'movie': ('movie', 'video', 'film'),
    'music': ('music', 'audio', 'song'),
    'book': ('book', 'documents', 'epub', 'pdf'),
    'photo': ('photo', 'picture'),
}

# --- File Type Definitions ---
MOVIE_EXTS = {'.mkv', '.mp4', '.mov', '.avi'}
MUSIC_EXTS = {'.mp3', '.wav'}
BOOK_EXTS = {'.epub', '.pdf'}
PHOTO_EXTS = {'.jpg', '.jpeg', '.png'}

# Extension to Type Mapping
EXT_TO_TYPE = {}
for ext in MOVIE_EXTS: EXT_TO_TYPE[ext] = 'movie'
for ext in MUSIC_EXTS: EXT_TO_TYPE[ext] = 'music'
for ext in BOOK_EXTS: EXT_TO_TYPE[ext] = 'book'
for ext in PHOTO_EXTS: EXT_TO_TYPE[ext] = 'photo'

# --- Hashing & Performance ---
HASH_CHUNK_SIZE = 1024 * 1024  # 1 MB chunks for reading
DEFAULT_MAX_WORKERS = 4

# --- Scheduling ---
DEFAULT_RESCAN_INTERVAL_MINUTES = 30

# --- Storage ---
DEFAULT_DB_NAME = "media_catalog.db"
LOG_FILE_NAME = "media_indexer.log"

# Environment variables that override the settings table
ENV_LIBRARY_ROOT = "LIBRARY_ROOT"
ENV_RESCAN_INTERVAL = "RESCAN_INTERVAL_MINUTES"
ENV_MAX_WORKERS = "MAX_WORKERS"
