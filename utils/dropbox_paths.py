"""
Helpers that turn user input (Dropbox paths or web URLs) into API paths.
"""

from __future__ import annotations

from urllib.parse import unquote, urlparse

VIDEO_EXTENSIONS = (".mp4", ".mov", ".m4v")


def to_api_path(value: str | None) -> str:
    """
    Normalise a folder reference for the Dropbox API.

    Accepts ``/Folder``, ``Folder/``, ``https://www.dropbox.com/home/Folder``,
    ``https://www.dropbox.com/scl/fo/<id>/Folder`` and
    ``https://www.dropbox.com/sh/<id>/Folder``.  Root is ``""``.
    """
    if not value:
        return ""
    value = value.strip()

    if "dropbox.com" in value:
        parsed = urlparse(value if "://" in value else f"https://{value}")
        path = unquote(parsed.path)
        if "/home/" in path or path == "/home":
            path = path.split("/home", 1)[1]
        else:
            for marker in ("/scl/fo/", "/sh/"):
                if marker in path:
                    # the segment right after the marker is the share id
                    parts = path.split(marker, 1)[1].split("/")[1:]
                    path = "/" + "/".join(p for p in parts if p)
                    break
        value = path

    value = value.rstrip("/")
    if not value:
        return ""
    return value if value.startswith("/") else f"/{value}"


def is_video_name(name: str) -> bool:
    return name.lower().endswith(VIDEO_EXTENSIONS)


def parent_path(path: str) -> str:
    head = path.rsplit("/", 1)[0]
    return head or "/"


def streaming_link(link: str) -> str:
    """Rewrite a temporary link so browsers stream instead of download."""
    if "?dl=1" in link:
        return link.replace("?dl=1", "?raw=1")
    if "&dl=1" in link:
        return link.replace("&dl=1", "&raw=1")
    if "raw=1" in link:
        return link
    separator = "&" if "?" in link else "?"
    return f"{link}{separator}raw=1"
