from pathlib import Path
from typing import Final

# Models
GEMINI_2_5_FLASH: Final = "gemini-2.5-flash"
GEMINI_2_5_FLASH_LITE: Final = "gemini-2.5-flash-lite"

SUPPORTED_PROVIDERS: Final = ("gemini",)
DEFAULT_PROVIDER: Final = "gemini"
DEFAULT_MODEL: Final = GEMINI_2_5_FLASH_LITE
DEFAULT_VISION_MODEL: Final = GEMINI_2_5_FLASH_LITE
DEFAULT_TRANSCRIPTION_MODEL: Final = GEMINI_2_5_FLASH

# Retry policy (seconds). Fixed delays, no jitter.
MAX_RETRIES: Final = 3
RETRY_DELAY: Final = 2.0
RATE_LIMIT_DELAY: Final = 5.0
TRANSCRIPTION_MAX_ATTEMPTS: Final = 3
TRANSCRIPTION_RETRY_DELAY: Final = 5.0

# Concurrency caps
CONCURRENT_API_CALLS: Final = 5
CONCURRENT_TRANSCRIPTIONS: Final = 10
CONCURRENT_VIDEOS: Final = 10
CONCURRENT_SCREENSHOTS: Final = 10

# Folders, relative to the project root
ROOT_DIR = Path(".")
VIDEOS_DIRNAME = "videos"
SCREENSHOTS_DIRNAME = "screenshots"
AUDIO_DIRNAME = "audio"
CSV_DIRNAME = "csv"
LOGS_DIRNAME = "logs"

# Tables
TRANSCRIPTS_TABLE = "transcriptions.csv"
TRANSCRIPT_ANALYSIS_TABLE = "transcription_processed.csv"
SCREENSHOTS_TABLE = "screenshots_processed.csv"
COMBINED_TABLE = "combined_analysis.csv"
RUN_SUMMARY_FILENAME = "run-summary.json"

SUPPORTED_VIDEO_EXTENSIONS: Final = (".mp4", ".avi", ".mov")
ARTIFACT_EXTENSION: Final = ".jpg"
AUDIO_FREQUENCY: Final = 16000
AUDIO_CHANNELS: Final = 1

# Scene detection sensitivity
SCENE_THRESHOLD: Final = 0.3
FALLBACK_SCENE_THRESHOLD: Final = 0.1
SCENE_SCALE_WIDTH: Final = 1280

# Column names double as resumption and join keys; renaming one breaks resumability.
COL_FILENAME: Final = "Filename"
COL_TRANSCRIPTION: Final = "Transcription"
COL_SUMMARY: Final = "Summary"
COL_TAGS: Final = "Tags"
COL_NEEDS_SCREENSHOTS: Final = "Needs Screenshots"
COL_SCREENSHOT_COUNT: Final = "Screenshot Count"
COL_EXTRACTED_TEXT: Final = "Extracted Text"
COL_CONTENT_SUMMARY: Final = "Content Summary"

# Transcript analysis
MIN_TRANSCRIPT_LENGTH: Final = 10
SUMMARY_MAX_TOKENS: Final = 150
TAGS_MAX_TOKENS: Final = 50
CUSTOM_MAX_TOKENS: Final = 250
DEFAULT_TEMPERATURE: Final = 0.7
SCREENSHOT_SUMMARY_MAX_TOKENS: Final = 2000

# Placeholder values
TOO_SHORT_SUMMARY: Final = "Transcription too short or empty"
TRANSCRIPTION_ERROR_PREFIX: Final = "Error: transcription failed"
TAGS_ERROR: Final = "Error generating tags"
CONTENT_ERROR: Final = "Error generating content"
SUMMARY_ERROR: Final = "Error generating summary"
SCREENSHOT_ERROR: Final = "Error processing screenshot"
SCREENSHOTS_ERROR: Final = "Error processing screenshots"
NO_CONTENT_SENTINEL: Final = "N/A"
FLAG_TRUE: Final = "True"
FLAG_FALSE: Final = "False"
