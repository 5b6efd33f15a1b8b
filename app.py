import logging

from flask import Flask, jsonify
from flask.json.provider import DefaultJSONProvider
from flask_cors import CORS
from datetime import datetime, date

import config
from models import SessionLocal, configure_database
from services.archive_scheduler import ArchiveScheduler, FileMarkerStore

from routes.tasks import tasks_bp
from routes.cron import cron_bp

logger = logging.getLogger(__name__)


class CustomJSONProvider(DefaultJSONProvider):
    def default(self, obj):
        if isinstance(obj, datetime):
            return obj.isoformat()
        if isinstance(obj, date):
            return obj.isoformat()
        return super().default(obj)


def create_app(overrides=None):
    app = Flask(__name__)
    app.json_provider_class = CustomJSONProvider
    app.json = CustomJSONProvider(app)

    app.config.update(
        DATABASE_URL=config.database_url,
        GOOGLE_CLIENT_ID=config.google_client_id,
        ALLOWED_EMAILS=config.allowed_emails,
        CRON_SECRET=config.cron_secret,
        NEAR_ARCHIVE_LOOKAHEAD_DAYS=config.near_archive_lookahead_days,
        ARCHIVE_STARTUP_DELAY_SECONDS=config.archive_startup_delay_seconds,
        ARCHIVE_MARKER_PATH=config.archive_marker_path,
        RUN_STARTUP_ARCHIVE=config.run_startup_archive,
    )
    if overrides:
        app.config.update(overrides)

    CORS(app, resources={r"/*": {"origins": "*"}})

    configure_database(app.config["DATABASE_URL"])

    scheduler = ArchiveScheduler(SessionLocal, FileMarkerStore(app.config["ARCHIVE_MARKER_PATH"]))
    app.extensions["archive_scheduler"] = scheduler
    if app.config["RUN_STARTUP_ARCHIVE"]:
        scheduler.schedule_startup_run(app.config["ARCHIVE_STARTUP_DELAY_SECONDS"])

    # Register blueprints
    app.register_blueprint(tasks_bp, url_prefix="/tasks")
    app.register_blueprint(cron_bp, url_prefix="/cron")

    @app.route("/health")
    def health():
        return jsonify({"status": "healthy"})

    @app.route("/")
    def root():
        return jsonify({"service": "ops-tasks", "status": "running"})

    return app


app = create_app()

if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    logger.info("DB configured: %s", app.config["DATABASE_URL"].split("://")[0])
    app.run(host="0.0.0.0", port=8001, debug=True)
