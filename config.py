from dotenv import load_dotenv
import os

load_dotenv()

database_url = os.getenv("DATABASE_URL", "sqlite:///ops_tasks.db")
google_client_id = os.getenv("GOOGLE_CLIENT_ID")
allowed_emails = [
    e.strip().lower()
    for e in os.getenv("ALLOWED_EMAILS", "").split(",")
    if e.strip()
]

# Shared secret expected from the external scheduler on /cron/auto-archive
cron_secret = os.getenv("CRON_SECRET")

near_archive_lookahead_days = int(os.getenv("NEAR_ARCHIVE_LOOKAHEAD_DAYS", "1"))
archive_startup_delay_seconds = float(os.getenv("ARCHIVE_STARTUP_DELAY_SECONDS", "2"))
archive_marker_path = os.getenv("ARCHIVE_MARKER_PATH", ".local/last_auto_archive_run")
# Set to "false" to skip the delayed archive run when the app starts
run_startup_archive = os.getenv("RUN_STARTUP_ARCHIVE", "true").lower() not in ("0", "false", "no")
