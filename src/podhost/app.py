"""
HTTP surface: RSS feeds, audio streaming and the management API.
"""

import hmac
import logging
import os
import shutil
import tempfile
from datetime import datetime
from typing import Any, Dict, Optional

from flask import Flask, Response, abort, jsonify, request

from .exceptions import ConflictError, StorageError, ValidationError
from .factory import Services
from .models import BlobPaths, Feed, get_mime_type, parse_iso_datetime
from .rss import generate_feed

API_KEY_HEADER = "X-API-Key"
_TRUE = {"true", "1", "yes", "on"}
_FALSE = {"false", "0", "no", "off"}


def parse_published_date(value: Optional[str]) -> Optional[datetime]:
    """Parse the optional publishedDate form field."""
    if not value:
        return None
    try:
        return parse_iso_datetime(value)
    except ValueError as e:
        raise ValidationError(
            "Invalid publishedDate format. "
            "Use ISO 8601 format (e.g., 2024-01-15T10:30:00Z)"
        ) from e


def parse_flag(name: str, value: Optional[str]) -> Optional[bool]:
    """Parse an optional boolean form field."""
    if value is None or value.strip() == "":
        return None
    lowered = value.strip().lower()
    if lowered in _TRUE:
        return True
    if lowered in _FALSE:
        return False
    raise ValidationError(f"Invalid value for {name}: {value!r}")


def _json_body() -> Dict[str, Any]:
    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        raise ValidationError("Expected a JSON object body")
    return body


def _feed_from_body(body: Dict[str, Any]) -> Feed:
    try:
        return Feed.from_dict(body)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"Invalid feed: {e}") from e


def create_app(services: Services) -> Flask:  # pylint: disable=too-many-locals,too-many-statements
    """Create the Flask application around already-initialized services."""
    logger = logging.getLogger(__name__)
    settings = services.settings
    index = services.index
    store = services.store

    app = Flask(__name__)
    app.extensions["podhost"] = services

    if not settings.api_key:
        logger.warning("API key not configured. Management endpoints will be unprotected!")

    @app.before_request
    def require_api_key():
        if not settings.api_key or not request.path.startswith("/api/"):
            return None
        if request.method in ("GET", "HEAD", "OPTIONS"):
            return None
        provided = request.headers.get(API_KEY_HEADER, "")
        if not hmac.compare_digest(provided.encode(), settings.api_key.encode()):
            logger.warning(
                "Unauthorized API access attempt from %s to %s",
                request.remote_addr, request.path,
            )
            return jsonify(error="Unauthorized. Valid API key required."), 401
        return None

    @app.errorhandler(ConflictError)
    @app.errorhandler(ValidationError)
    def handle_bad_request(error: Exception):
        return jsonify(error=str(error)), 400

    @app.errorhandler(StorageError)
    def handle_storage_error(error: StorageError):
        logger.error("Storage failure: %s", error)
        return jsonify(error="Storage operation failed"), 500

    def default_feed_id() -> str:
        if settings.default_feed_id:
            return settings.default_feed_id
        feeds = index.list_feeds()
        if not feeds:
            abort(404)
        return feeds[0].id

    def require_feed(feed_id: str) -> Feed:
        feed = index.get_feed(feed_id)
        if feed is None:
            abort(404)
        return feed

    # Public routes

    def render_feed(feed_id: str) -> Response:
        snapshot = index.snapshot(feed_id)
        if snapshot is None:
            abort(404)
        feed, episodes = snapshot
        xml = generate_feed(feed, episodes, settings.base_url)
        return Response(xml, mimetype="application/xml")

    @app.get("/feed.xml")
    def default_feed_xml():
        return render_feed(default_feed_id())

    @app.get("/<feed_id>/feed.xml")
    def feed_xml(feed_id: str):
        return render_feed(feed_id)

    def serve_blob(path: str, mimetype: str) -> Response:
        if not store.exists(path):
            abort(404)
        size = store.size(path)
        headers = {"Accept-Ranges": "bytes"}

        byte_range = request.range
        if byte_range is not None:
            span = byte_range.range_for_length(size)
            if span is None:
                return Response(status=416, headers={"Content-Range": f"bytes */{size}"})
            start, stop = span
            headers["Content-Range"] = f"bytes {start}-{stop - 1}/{size}"
            headers["Content-Length"] = str(stop - start)
            return Response(
                store.get_object_stream(path, start, stop),
                status=206, mimetype=mimetype, headers=headers,
                direct_passthrough=True,
            )

        headers["Content-Length"] = str(size)
        return Response(
            store.get_object_stream(path),
            status=200, mimetype=mimetype, headers=headers,
            direct_passthrough=True,
        )

    def serve_audio(feed_id: str, filename: str) -> Response:
        if "/" in filename or filename in ("", ".", ".."):
            abort(404)
        return serve_blob(BlobPaths.audio(feed_id, filename), get_mime_type(filename))

    @app.get("/audio/<path:filename>")
    def default_audio(filename: str):
        return serve_audio(default_feed_id(), filename)

    @app.get("/<feed_id>/audio/<path:filename>")
    def audio(feed_id: str, filename: str):
        return serve_audio(feed_id, filename)

    @app.get("/<feed_id>/icon.png")
    def icon(feed_id: str):
        require_feed(feed_id)
        return serve_blob(BlobPaths.icon(feed_id), "image/png")

    # Feed management

    @app.get("/api/feeds")
    def list_feeds():
        return jsonify([feed.to_json() for feed in index.list_feeds()])

    @app.post("/api/feeds")
    def create_feed():
        feed = index.create_feed(_feed_from_body(_json_body()))
        return jsonify(feed.to_json()), 201

    @app.get("/api/feeds/<feed_id>")
    def get_feed(feed_id: str):
        return jsonify(require_feed(feed_id).to_json())

    @app.put("/api/feeds/<feed_id>")
    def update_feed(feed_id: str):
        current = require_feed(feed_id)
        merged = current.to_json()
        merged.update(_json_body())
        feed = index.update_feed(feed_id, _feed_from_body(merged))
        return jsonify(feed.to_json())

    @app.post("/api/feeds/<feed_id>/rename")
    def rename_feed(feed_id: str):
        new_id = _json_body().get("newId")
        if not new_id:
            raise ValidationError("newId is required")
        try:
            feed = index.rename_feed(feed_id, new_id)
        except ValueError as e:
            raise ValidationError(str(e)) from e
        return jsonify(feed.to_json())

    @app.delete("/api/feeds/<feed_id>")
    def delete_feed(feed_id: str):
        if not index.delete_feed(feed_id):
            abort(404)
        return "", 204

    @app.put("/api/feeds/<feed_id>/icon")
    def upload_icon(feed_id: str):
        require_feed(feed_id)
        data = request.get_data()
        if not data:
            raise ValidationError("No image uploaded")
        feed = index.set_feed_icon(feed_id, data)
        return jsonify(feed.to_json())

    # Episodes

    def list_episodes(feed_id: str) -> Response:
        return jsonify([e.to_json() for e in index.list_episodes(feed_id)])

    def add_episode(feed_id: str):
        require_feed(feed_id)
        upload = request.files.get("file")
        if upload is None or not upload.filename:
            raise ValidationError("No file uploaded")

        published_date = parse_published_date(request.form.get("publishedDate"))
        use_metadata = parse_flag(
            "useMetadataForPublishedDate",
            request.form.get("useMetadataForPublishedDate"),
        )

        file_name = os.path.basename(upload.filename.replace("\\", "/"))
        if file_name in ("", ".", ".."):
            raise ValidationError("Invalid file name")

        scratch = tempfile.mkdtemp(prefix="podhost_upload_")
        try:
            local_path = os.path.join(scratch, file_name)
            upload.save(local_path)
            if os.path.getsize(local_path) == 0:
                raise ValidationError("No file uploaded")
            episode = index.add_episode(
                feed_id,
                local_path,
                title=request.form.get("title"),
                description=request.form.get("description"),
                published_date=published_date,
                use_metadata=use_metadata,
            )
        finally:
            shutil.rmtree(scratch, ignore_errors=True)

        location = f"/api/feeds/{feed_id}/episodes/{episode.id}"
        return jsonify(episode.to_json()), 201, {"Location": location}

    def delete_episode(feed_id: str, episode_id: str):
        if not index.delete_episode(feed_id, episode_id):
            abort(404)
        return "", 204

    def transfer_episode(feed_id: str, episode_id: str, move: bool):
        target = _json_body().get("targetFeedId")
        if not target:
            raise ValidationError("targetFeedId is required")
        if move:
            episode = index.move_episode(episode_id, feed_id, target)
        else:
            episode = index.copy_episode(episode_id, feed_id, target)
        if episode is None:
            abort(404)
        return jsonify(episode.to_json())

    @app.get("/api/episodes")
    def default_list_episodes():
        return list_episodes(default_feed_id())

    @app.post("/api/episodes")
    def default_add_episode():
        return add_episode(default_feed_id())

    @app.delete("/api/episodes/<episode_id>")
    def default_delete_episode(episode_id: str):
        return delete_episode(default_feed_id(), episode_id)

    @app.get("/api/feeds/<feed_id>/episodes")
    def feed_list_episodes(feed_id: str):
        return list_episodes(feed_id)

    @app.post("/api/feeds/<feed_id>/episodes")
    def feed_add_episode(feed_id: str):
        return add_episode(feed_id)

    @app.get("/api/feeds/<feed_id>/episodes/<episode_id>")
    def feed_get_episode(feed_id: str, episode_id: str):
        episode = index.get_episode(feed_id, episode_id)
        if episode is None:
            abort(404)
        return jsonify(episode.to_json())

    @app.delete("/api/feeds/<feed_id>/episodes/<episode_id>")
    def feed_delete_episode(feed_id: str, episode_id: str):
        return delete_episode(feed_id, episode_id)

    @app.post("/api/feeds/<feed_id>/episodes/<episode_id>/move")
    def move_episode(feed_id: str, episode_id: str):
        return transfer_episode(feed_id, episode_id, move=True)

    @app.post("/api/feeds/<feed_id>/episodes/<episode_id>/copy")
    def copy_episode(feed_id: str, episode_id: str):
        return transfer_episode(feed_id, episode_id, move=False)

    return app
