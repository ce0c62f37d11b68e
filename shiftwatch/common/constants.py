"""Application constants."""

USER_AGENT = "shiftwatch/1.0 (+code-monitor; contact: configured-email)"
SOURCE_NAMES = (
    "OFFICIAL_SITE",
    "OFFICIAL_X",
    "MEDIA_TRUSTED",
    "COMMUNITY_AUX",
)
SOURCE_KINDS = ("json_feed", "article")
MODES = ("DRY_RUN", "PROD")
COMMANDS = ("run", "resend", "fetch")
DEFAULT_DESTINATION = "DISCORD_WEBHOOK"
EXIT_SUCCESS = 0
EXIT_PARTIAL = 10
EXIT_HARD_FAIL = 20
JSON_LOG_FIELDS = (
    "timestamp",
    "level",
    "run_id",
    "stage",
    "source",
    "code_hash",
    "event",
    "status",
    "attempt",
    "duration_ms",
    "rows_in",
    "rows_out",
    "error_code",
    "message",
)
