"""
HTTP server for Waitlist Alerts.

A small Flask app exposing the engine's entry points:
1. GET  /api/auto-notify         - check for new matches and alert agents
2. GET  /api/cron/match-alerts   - same, for a scheduled caller with a bearer secret
3. POST /api/notify              - manual alert for a single unit
4. GET  /api/outcomes            - funnel, YTD, weekly and per-property statistics
5. GET  /health                  - health check

Each request runs the engine to completion; nothing runs in the background.
"""

import logging
from typing import Optional
from flask import Flask, jsonify, request

from .config import AppConfig, get_app_config
from .errors import ConfigurationError, DatabaseError, PipelineError, ValidationError
from .models import utcnow
from .outcomes import get_outcome_stats
from .pipeline import MatchAlertPipeline, notify_manual

logger = logging.getLogger(__name__)


def create_app(
    pipeline: Optional[MatchAlertPipeline] = None,
    config: Optional[AppConfig] = None,
) -> Flask:
    """
    Build the Flask app.

    Args:
        pipeline: Engine instance (built from the environment when omitted)
        config: App configuration (cron secret)
    """
    app = Flask(__name__)
    config = config or get_app_config()
    engine = pipeline or MatchAlertPipeline(config=config)

    def run_engine():
        report = engine.run()
        return report.to_dict()

    @app.route("/api/auto-notify", methods=["GET"])
    def auto_notify():
        """Check all units against the waitlist and alert agents about new matches."""
        try:
            return jsonify(run_engine())
        except PipelineError as e:
            logger.error(f"Auto-notify error: {e}")
            return jsonify({"error": "Failed to check for matches", "details": str(e)}), 500

    @app.route("/api/cron/match-alerts", methods=["GET"])
    def cron_match_alerts():
        """Scheduled trigger. Requires 'Authorization: Bearer <CRON_SECRET>' when a secret is set."""
        if config.cron_secret:
            if request.headers.get("Authorization") != f"Bearer {config.cron_secret}":
                return jsonify({"error": "Unauthorized"}), 401

        try:
            result = run_engine()
        except PipelineError as e:
            logger.error(f"Cron match-alerts error: {e}")
            return jsonify({"error": "Failed to trigger match alerts", "details": str(e)}), 500

        return jsonify({
            "success": True,
            "triggeredAt": utcnow().isoformat(),
            "source": "cron",
            "result": result,
        })

    @app.route("/api/notify", methods=["POST"])
    def manual_notify():
        """Send an alert for one unit picked in the UI."""
        payload = request.get_json(silent=True)
        try:
            body = notify_manual(
                payload,
                sender=engine.sender,
                recorder=engine.recorder,
            )
        except ValidationError as e:
            return jsonify({"error": str(e)}), 400
        except Exception as e:
            logger.error(f"Notification API error: {e}")
            return jsonify({"error": "Failed to process notification request"}), 500

        status = 200 if body.get("success") else 500
        return jsonify(body), status

    @app.route("/api/outcomes", methods=["GET"])
    def outcomes():
        """Waitlist funnel statistics with year-to-date and weekly metrics."""
        try:
            stats = get_outcome_stats(engine.db)
        except (DatabaseError, ConfigurationError) as e:
            logger.error(f"Outcome stats error: {e}")
            return jsonify({"error": "Failed to load outcomes", "details": str(e)}), 500
        return jsonify({"success": True, **stats.to_dict()})

    @app.route("/health")
    def health_check():
        """Health check endpoint."""
        return {"status": "ok"}

    return app


def run_server(host: str = "0.0.0.0", port: int = 5000, debug: bool = False):
    """Run the Flask server."""
    app = create_app()
    app.run(host=host, port=port, debug=debug)


def main():
    """CLI entry point for the HTTP server."""
    import argparse

    parser = argparse.ArgumentParser(description="Waitlist Alerts HTTP Server")
    parser.add_argument("--host", default="0.0.0.0", help="Host to bind to")
    parser.add_argument("--port", type=int, default=5000, help="Port to bind to")
    parser.add_argument("--debug", action="store_true", help="Enable debug mode")

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s"
    )

    logger.info(f"Starting Waitlist Alerts server on {args.host}:{args.port}")
    run_server(args.host, args.port, args.debug)


if __name__ == "__main__":
    main()
