"""
Flask web view for paperfeed.

Serves the most recent digest handed over by the web publisher. Nothing is
persisted: until the first successful run the pages report that no digest
is available yet. ``main.py --serve`` runs the pipeline and starts this app.

Routes
──────
GET  /              Latest digest as HTML
GET  /api/digest    Latest digest as JSON (404 before the first run)
"""

from __future__ import annotations

from typing import Optional

from flask import Flask, Response, jsonify

from paperfeed.publishers import LatestDigest
from paperfeed.render import render_html


def create_app(store: Optional[LatestDigest] = None) -> Flask:
    """Build the Flask app around a shared ``LatestDigest`` store."""
    app = Flask(__name__)
    store = store if store is not None else LatestDigest()
    app.config["DIGEST_STORE"] = store

    # ── UI ─────────────────────────────────────────────────────────────────

    @app.route("/")
    def index():
        return Response(render_html(store.get()), mimetype="text/html")

    # ── API ────────────────────────────────────────────────────────────────

    @app.route("/api/digest")
    def latest_digest():
        """Return the latest digest as JSON."""
        digest = store.get()
        if digest is None:
            return jsonify({"error": "No digest available yet"}), 404
        return jsonify(digest.model_dump(mode="json"))

    return app
