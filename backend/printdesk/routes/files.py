# Overview: Serves stored print files from the blob store.

from flask import Blueprint, send_file

from ..services.storage_service import get_blob_store


files_bp = Blueprint("files", __name__, url_prefix="/api/files")

CACHE_MAX_AGE = 3600


@files_bp.get("/<key>")
def serve_file_route(key):
    """
    Stream one blob.

    Keys with path segments are rejected (400) before touching the disk.
    Responses carry Last-Modified and Cache-Control: public, max-age=3600,
    and honour If-Modified-Since.
    """
    path = get_blob_store().path_for(key)
    response = send_file(path, conditional=True, max_age=CACHE_MAX_AGE, download_name=key)
    response.cache_control.public = True
    return response
