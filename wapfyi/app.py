"""Web front end: proof-of-work protected URL shortener with static pages."""

from __future__ import annotations

import argparse
import logging
import os
import posixpath
import re
import secrets
import string
from dataclasses import dataclass
from pathlib import Path
from typing import Union
from urllib.parse import urlsplit

from flask import Flask, Response, redirect, request, send_file

from .pow import verify_proof_of_work
from .storage import ChallengeStorage, StorageError, create_storage

log = logging.getLogger(__name__)

CHALLENGE_LENGTH = 200
RANDOM_PATH_LENGTH = 5
MAX_TRIES = 1000
POW_DIFFICULTY = 4
MAX_PATH_LENGTH = 50
MAX_REDIRECT_PATH_LENGTH = 20
MAX_URL_LENGTH = 200
WAP_ACCEPT = "text/vnd.wap.wml"
WAP_SITE = "https://wap.bevelgacom.be"
SHORT_DOMAIN = "wap.fyi"

_CHALLENGE_CHARSET = string.ascii_lowercase + string.ascii_uppercase + string.digits
_PATH_CHARSET = string.ascii_lowercase + string.digits
_PATH_RE = re.compile(r"[a-zA-Z0-9_-]+")
_SOLUTION_RE = re.compile(r"[+-]?[0-9]+")
_INT64_MIN = -(1 << 63)
_INT64_MAX = (1 << 63) - 1

_SCHEME_RE = re.compile(r"([a-zA-Z][a-zA-Z0-9+.\-]*):")
_BAD_ESCAPE_RE = re.compile(r"%(?![0-9a-fA-F]{2})")
_PORT_RE = re.compile(r"(:[0-9]*)?")
_HOST_CHARS = frozenset(
    string.ascii_letters + string.digits + "-._~!$&'()*+,;=:[]<>\"%"
)


@dataclass
class TemplateData:
    """Values shown on the index page."""

    pow_challenge: str = ""
    full_url: str = ""
    path: str = ""
    error_message: str = ""
    success_message: str = ""

    def fields(self) -> dict[str, str]:
        """Return the values under the names the page template uses."""
        return {
            "PoWChallenge": self.pow_challenge,
            "FullURL": self.full_url,
            "Path": self.path,
            "ErrorMessage": self.error_message,
            "SuccessMessage": self.success_message,
        }


def generate_random_string(length: int) -> str:
    """Return a random string of ``length`` characters from [a-zA-Z0-9]."""
    return "".join(secrets.choice(_CHALLENGE_CHARSET) for _ in range(length))


def generate_random_path(length: int) -> str:
    """Return a random string of ``length`` characters from [a-z0-9]."""
    return "".join(secrets.choice(_PATH_CHARSET) for _ in range(length))


def is_valid_path(path: str) -> bool:
    """Tell whether ``path`` is non-empty and made only of [a-zA-Z0-9_-]."""
    return _PATH_RE.fullmatch(path) is not None


def _valid_host(host: str) -> bool:
    if host.startswith("["):
        end = host.find("]")
        if end < 0 or not _PORT_RE.fullmatch(host[end + 1 :]):
            return False
    else:
        colon = host.rfind(":")
        if colon >= 0 and not _PORT_RE.fullmatch(host[colon:]):
            return False
    if _BAD_ESCAPE_RE.search(host):
        return False
    return all(ch in _HOST_CHARS or ord(ch) >= 0x80 for ch in host)


def is_valid_url(raw_url: str) -> bool:
    """Tell whether ``raw_url`` is an http(s) URL whose host contains a dot."""
    if any(ord(ch) < 0x20 or ord(ch) == 0x7F for ch in raw_url):
        return False
    match = _SCHEME_RE.match(raw_url)
    if match is None or match.group(1).lower() not in ("http", "https"):
        return False
    try:
        parts = urlsplit(raw_url)
    except ValueError:
        return False
    host = parts.netloc.rpartition("@")[2]
    if not host or not _valid_host(host):
        return False
    if _BAD_ESCAPE_RE.search(parts.path) or _BAD_ESCAPE_RE.search(parts.fragment):
        return False
    return "." in host


# --- page templates -------------------------------------------------------

_ACTION_RE = re.compile(r"\{\{(-\s)?(.*?)(\s-)?\}\}", re.S)
_FIELD_RE = re.compile(r"\.([A-Za-z_]\w*)")


@dataclass
class _Field:
    name: str


@dataclass
class _If:
    name: str
    body: list
    alternative: list


_Node = Union[str, _Field, _If]


def _tokenize(source: str) -> list[tuple[str, str]]:
    tokens: list[tuple[str, str]] = []
    pos = 0
    trim_next = False
    for match in _ACTION_RE.finditer(source):
        text = source[pos : match.start()]
        if trim_next:
            text = text.lstrip()
        if match.group(1):
            text = text.rstrip()
        if text:
            tokens.append(("text", text))
        tokens.append(("action", match.group(2).strip()))
        trim_next = bool(match.group(3))
        pos = match.end()
    tail = source[pos:]
    if trim_next:
        tail = tail.lstrip()
    if tail:
        tokens.append(("text", tail))
    return tokens


def _field_name(expr: str) -> str:
    match = _FIELD_RE.fullmatch(expr)
    if match is None:
        raise ValueError(f"unsupported template action: {expr!r}")
    return match.group(1)


def _parse_block(
    tokens: list[tuple[str, str]], pos: int
) -> tuple[list[_Node], int, str | None]:
    nodes: list[_Node] = []
    while pos < len(tokens):
        kind, value = tokens[pos]
        pos += 1
        if kind == "text":
            nodes.append(value)
        elif value.startswith("/*"):
            continue
        elif value in ("end", "else"):
            return nodes, pos, value
        elif value.startswith("if "):
            name = _field_name(value[3:].strip())
            body, pos, term = _parse_block(tokens, pos)
            alternative: list[_Node] = []
            if term == "else":
                alternative, pos, term = _parse_block(tokens, pos)
            if term != "end":
                raise ValueError("template 'if' without matching 'end'")
            nodes.append(_If(name, body, alternative))
        else:
            nodes.append(_Field(_field_name(value)))
    return nodes, pos, None


def _escape(value: str) -> str:
    return (
        value.replace("&", "&amp;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
        .replace("'", "&#39;")
        .replace('"', "&#34;")
    )


def _lookup(values: dict[str, str], name: str) -> str:
    try:
        return values[name]
    except KeyError:
        raise ValueError(f"template refers to unknown field {name!r}") from None


def _render_nodes(nodes: list[_Node], values: dict[str, str]) -> str:
    parts = []
    for node in nodes:
        if isinstance(node, str):
            parts.append(node)
        elif isinstance(node, _Field):
            parts.append(_escape(_lookup(values, node.name)))
        else:
            branch = node.body if _lookup(values, node.name) else node.alternative
            parts.append(_render_nodes(branch, values))
    return "".join(parts)


def render_index(templates_dir: str | os.PathLike, data: TemplateData) -> str:
    """Render ``index.html`` from ``templates_dir`` with ``data``."""
    source = Path(templates_dir, "index.html").read_text(encoding="utf-8")
    nodes, _, term = _parse_block(_tokenize(source), 0)
    if term is not None:
        raise ValueError(f"unexpected template action {term!r}")
    return _render_nodes(nodes, data.fields())


# --- shortening logic -----------------------------------------------------


class _Rejected(ValueError):
    """A shortening request refused for a reason the user can fix."""

    def __init__(self, message: str, path: str) -> None:
        super().__init__(message)
        self.path = path


def _parse_solution(solution: str) -> int:
    if not _SOLUTION_RE.fullmatch(solution):
        raise ValueError("invalid solution format")
    value = int(solution)
    if not _INT64_MIN <= value <= _INT64_MAX:
        raise ValueError("invalid solution format")
    return value


class ShortenerService:
    """Challenge issuing and checking, and short URL creation, over a store."""

    def __init__(self, store: ChallengeStorage) -> None:
        self.store = store

    def new_challenge(self) -> str:
        """Create, record as unsolved and return a fresh challenge."""
        challenge = ""
        for _ in range(MAX_TRIES):
            challenge = generate_random_string(CHALLENGE_LENGTH)
            if self.store.get(challenge) is None:
                break
        self.store.store(challenge, False)
        return challenge

    def verify_challenge(self, challenge: str, solution: str) -> None:
        """Check a submitted proof of work and mark the challenge solved.

        Raises ValueError with a user-facing message when the submission is
        refused, and StorageError when the store fails.
        """
        if not challenge or not solution:
            raise ValueError("challenge and solution are required")
        number = _parse_solution(solution)

        try:
            solved = self.store.get(challenge)
        except StorageError as exc:
            log.error("Failed to retrieve challenge: %s", exc)
            raise
        if solved is None:
            raise ValueError("challenge not found")
        if solved:
            raise ValueError("challenge already solved")

        if not verify_proof_of_work(challenge, number, POW_DIFFICULTY):
            raise ValueError("invalid proof of work")

        try:
            self.store.store(challenge, True)
        except StorageError as exc:
            log.error("Failed to mark challenge as solved: %s", exc)
            raise

    def shorten(self, full_url: str, path: str) -> str:
        """Map ``path`` (random if empty) to ``full_url`` and return the path.

        Raises ValueError with a user-facing message when the request is
        refused, and StorageError when the store fails.
        """
        if not path:
            for _ in range(MAX_TRIES):
                path = generate_random_path(RANDOM_PATH_LENGTH)
                try:
                    taken = self.store.get_url(path) is not None
                except StorageError as exc:
                    log.error("Failed to check if path exists: %s", exc)
                    raise StorageError("error checking path availability") from exc
                if not taken:
                    break

        if not 1 <= len(path.encode("utf-8")) <= MAX_PATH_LENGTH:
            raise _Rejected(
                "invalid path length, must be between 1 and 50 characters", path
            )
        if not is_valid_path(path):
            raise _Rejected("invalid path format, must contain only [a-zA-Z0-9_-]", path)
        if not full_url:
            raise _Rejected("full URL is required", path)
        if len(full_url.encode("utf-8")) > MAX_URL_LENGTH:
            raise _Rejected(
                "full URL is too long, must be less than 200 characters", path
            )

        try:
            exists = self.store.get_url(path) is not None
        except StorageError as exc:
            log.error("Failed to retrieve URL mapping: %s", exc)
            raise StorageError("error retrieving URL mapping") from exc
        if exists:
            raise _Rejected("path already exists", path)

        if not is_valid_url(full_url):
            if not is_valid_url("http://" + full_url):
                raise _Rejected("invalid full URL format", path)
            full_url = "http://" + full_url

        try:
            self.store.store_url(path, full_url)
        except StorageError as exc:
            log.error("Failed to store URL mapping: %s", exc)
            raise StorageError("error storing URL mapping") from exc
        return path


# --- web application ------------------------------------------------------


def _text(message: str, status: int) -> Response:
    return Response(message, status=status, content_type="text/plain; charset=UTF-8")


def _wants_wap() -> bool:
    return WAP_ACCEPT in request.headers.get("Accept", "")


def create_app(
    store: ChallengeStorage | None = None,
    templates_dir: str | os.PathLike = "templates",
) -> Flask:
    """Build the web application over ``store`` and ``templates_dir``."""
    service = ShortenerService(create_storage() if store is None else store)
    templates = os.fspath(templates_dir)
    app = Flask(__name__, static_folder=None)

    def render(data: TemplateData) -> Response:
        return Response(render_index(templates, data), content_type="text/html")

    def serve_home() -> Response:
        try:
            challenge = service.new_challenge()
        except StorageError as exc:
            log.error("Failed to generate challenge: %s", exc)
            return _text("error generating challenge", 500)
        if _wants_wap():
            return redirect(WAP_SITE, 301)
        return render(TemplateData(pow_challenge=challenge))

    def serve_404() -> Response:
        if _wants_wap():
            page = os.path.abspath(os.path.join(templates, "404.wml"))
            if not os.path.isfile(page):
                return _text("Not Found", 404)
            return send_file(page, mimetype=WAP_ACCEPT)
        return _text("404 - Not Found", 404)

    def handle_shorten() -> Response:
        full_url = request.values.get("fullURL", "")
        path = request.values.get("path", "")

        def render_error(message: str, shown_path: str = path) -> Response:
            try:
                challenge = service.new_challenge()
            except StorageError as exc:
                log.error("Failed to generate new challenge: %s", exc)
                return _text("error generating new challenge", 500)
            return render(
                TemplateData(
                    pow_challenge=challenge,
                    full_url=full_url,
                    path=shown_path,
                    error_message=message,
                )
            )

        try:
            service.verify_challenge(
                request.values.get("pow_challenge", ""),
                request.values.get("pow_solution", ""),
            )
        except StorageError:
            return _text("internal server error", 500)
        except ValueError as exc:
            return render_error(str(exc))

        try:
            short_path = service.shorten(full_url, path)
        except StorageError as exc:
            return _text(str(exc), 500)
        except _Rejected as exc:
            return render_error(str(exc), exc.path)

        try:
            challenge = service.new_challenge()
        except StorageError as exc:
            log.error("Failed to generate new challenge: %s", exc)
            return _text("error generating new challenge", 500)
        return render(
            TemplateData(
                pow_challenge=challenge,
                success_message=(
                    "URL shortened successfully! Your short URL is: "
                    f"{SHORT_DOMAIN}/{short_path}"
                ),
            )
        )

    def handle_redirect_or_static(path: str) -> Response:
        path = path.removeprefix("/")
        if not path:
            return serve_home()

        if is_valid_path(path) and len(path) <= MAX_REDIRECT_PATH_LENGTH:
            try:
                target = service.store.get_url(path)
            except StorageError as exc:
                log.error("Failed to retrieve URL mapping for %s: %s", path, exc)
            else:
                if target is not None:
                    return redirect(target, 301)

        clean = posixpath.normpath(path)
        if ".." in clean or clean.startswith("/"):
            log.warning("Path traversal attempt detected: %s", path)
            return _text("404 - Not Found", 404)

        full_path = os.path.join(templates, clean)
        abs_templates = os.path.abspath(templates)
        abs_full = os.path.abspath(full_path)
        if not abs_full.startswith(abs_templates + os.sep) and abs_full != abs_templates:
            log.warning(
                "Path traversal attempt detected (absolute path check): %s -> %s",
                path,
                abs_full,
            )
            return _text("404 - Not Found", 404)

        try:
            os.stat(full_path)
        except FileNotFoundError:
            log.info("File not found: %s", full_path)
            return serve_404()
        except OSError as exc:
            log.error("Error checking file %s: %s", full_path, exc)
            return _text("Internal Server Error", 500)

        if os.path.isdir(abs_full):
            abs_full = os.path.join(abs_full, "index.html")
            if not os.path.isfile(abs_full):
                return Response(
                    '{"message":"Not Found"}\n',
                    status=404,
                    content_type="application/json",
                )
        return send_file(abs_full)

    @app.get("/")
    def home() -> Response:
        return serve_home()

    @app.route("/shorten.html", methods=["GET", "POST"])
    def shorten_page() -> Response:
        if request.method == "POST":
            return handle_shorten()
        return serve_home()

    @app.get("/<path:subpath>")
    def catch_all(subpath: str) -> Response:
        return handle_redirect_or_static(subpath)

    return app


def main(argv: list[str] | None = None) -> int:
    """Run the shortener web server."""
    parser = argparse.ArgumentParser(prog="wapfyi", description="Run the URL shortener.")
    parser.add_argument("--host", default="0.0.0.0", help="address to listen on")
    parser.add_argument("--port", type=int, default=8080, help="port to listen on")
    parser.add_argument(
        "--templates", default="templates", help="directory of pages and templates"
    )
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO)
    with create_storage() as store:
        app = create_app(store, args.templates)
        app.run(host=args.host, port=args.port)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())