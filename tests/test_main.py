from __future__ import annotations

import logging
import pathlib
import re

from fastapi.testclient import TestClient
import pytest

from secure_site.config import Settings
from secure_site.server import create_app

INDEX_HTML = """<!DOCTYPE html>
<html>
<head>
  <script>window.dataLayer = [];</script>
  <script src="/assets/js/main.js"></script>
</head>
<body>
  <!-- <script>notRewritten()</script> -->
  <script type="module">boot();</script>
</body>
</html>
"""


@pytest.fixture()
def site_root(tmp_path):
    (tmp_path / "index.html").write_text(INDEX_HTML)
    (tmp_path / "emergency-service-worker.js").write_text("self.addEventListener('fetch', () => {});")
    (tmp_path / "secret.html").write_text("<p>internal</p>")
    (tmp_path / "assets" / "css").mkdir(parents=True)
    (tmp_path / "assets" / "css" / "style.css").write_text("body { margin: 0; }")
    (tmp_path / "assets" / "notes.txt").write_text("not for the public")
    (tmp_path / "assets" / "LICENSE").write_text("MIT")
    (tmp_path / "images").mkdir()
    (tmp_path / "images" / "logo.png").write_bytes(b"\x89PNG\r\n\x1a\nfake")
    return tmp_path


@pytest.fixture()
def api_client(site_root):
    return TestClient(create_app(Settings(document_root=site_root)))


def _csp_nonce(response) -> str:
    match = re.search(r"'nonce-([^']+)'", response.headers["content-security-policy"])
    assert match is not None
    return match.group(1)


def test_root_serves_index_with_matching_nonces(api_client):
    response = api_client.get("/")

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/html")
    nonce = _csp_nonce(response)
    body_nonces = re.findall(r'nonce="([^"]+)"', response.text)
    assert body_nonces == [nonce, nonce]
    assert '<script src="/assets/js/main.js">' in response.text
    assert "<!-- <script>notRewritten()</script> -->" in response.text
    assert response.headers["cache-control"] == "no-cache, no-store, must-revalidate"
    assert "etag" not in response.headers


def test_nonce_changes_per_response(api_client):
    first = _csp_nonce(api_client.get("/index.html"))
    second = _csp_nonce(api_client.get("/index.html"))

    assert first != second


def test_security_headers_are_always_set(api_client):
    for path in ("/", "/missing.html", "/secret.html"):
        response = api_client.get(path)

        assert response.headers["x-frame-options"] == "DENY"
        assert response.headers["x-content-type-options"] == "nosniff"
        assert response.headers["x-xss-protection"] == "1; mode=block"
        assert response.headers["referrer-policy"] == "strict-origin-when-cross-origin"
        assert response.headers["x-permitted-cross-domain-policies"] == "none"
        assert "camera=()" in response.headers["permissions-policy"]
        assert "script-src 'self'" in response.headers["content-security-policy"]
        assert "strict-transport-security" not in response.headers


def test_hsts_only_in_production(site_root):
    client = TestClient(create_app(Settings(document_root=site_root, environment="production")))

    response = client.get("/")

    assert response.headers["strict-transport-security"].startswith("max-age=31536000")


@pytest.mark.parametrize(
    "path",
    [
        "/../../etc/passwd",
        "/%2e%2e/%2e%2e/etc/passwd",
        "/assets/..%5C..%5Cindex.html",
        "/assets//css/style.css",
        "/.env",
    ],
)
def test_traversal_attempts_are_forbidden(api_client, path):
    response = api_client.get(path)

    assert response.status_code == 403
    assert response.text == "Forbidden"


def test_unlisted_file_forbidden_even_if_present(api_client):
    response = api_client.get("/secret.html")

    assert response.status_code == 403
    assert "unauthorized" not in response.text


def test_unknown_extension_forbidden(api_client):
    assert api_client.get("/assets/notes.txt").status_code == 403


def test_extensionless_asset_forbidden(api_client):
    assert api_client.get("/assets/LICENSE").status_code == 403


def test_missing_allowed_file_is_404(api_client):
    response = api_client.get("/about.html")

    assert response.status_code == 404
    assert "404 Not Found" in response.text
    assert "about.html" not in response.text


def test_service_worker_served_as_javascript(api_client):
    response = api_client.get("/emergency-service-worker.js")

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/javascript")
    assert response.headers["cache-control"] == "public, max-age=3600"
    assert response.headers["etag"]


def test_images_get_longer_cache_lifetime(api_client):
    response = api_client.get("/images/logo.png")

    assert response.status_code == 200
    assert response.headers["content-type"] == "image/png"
    assert response.headers["cache-control"] == "public, max-age=86400"


def test_etag_is_stable_across_requests(api_client):
    first = api_client.get("/assets/css/style.css")
    second = api_client.get("/assets/css/style.css")

    assert first.headers["etag"] == second.headers["etag"]


def test_matching_if_none_match_returns_304(api_client):
    etag = api_client.get("/assets/css/style.css").headers["etag"]

    response = api_client.get("/assets/css/style.css", headers={"If-None-Match": etag})

    assert response.status_code == 304
    assert response.content == b""


def test_post_serves_files(api_client):
    assert api_client.post("/index.html").status_code == 200


@pytest.mark.parametrize("method", ["DELETE", "PUT", "PATCH"])
def test_other_methods_not_allowed(api_client, method):
    response = api_client.request(method, "/index.html")

    assert response.status_code == 405
    assert response.text == "Method Not Allowed"


def test_options_preflight_short_circuits(api_client):
    response = api_client.options("/secret.html")

    assert response.status_code == 200
    assert response.content == b""
    assert response.headers["access-control-allow-methods"] == "GET, POST, OPTIONS"


def test_cors_echoes_only_allowed_origins(api_client):
    allowed = api_client.get("/", headers={"Origin": "http://localhost:3000"})
    denied = api_client.get("/", headers={"Origin": "https://evil.example"})

    assert allowed.headers["access-control-allow-origin"] == "http://localhost:3000"
    assert allowed.headers["access-control-allow-credentials"] == "true"
    assert "access-control-allow-origin" not in denied.headers


def test_cors_production_origins(site_root):
    client = TestClient(create_app(Settings(document_root=site_root, environment="production")))

    prod = client.get("/", headers={"Origin": "https://tyrehero.com"})
    dev = client.get("/", headers={"Origin": "http://localhost:3000"})

    assert prod.headers["access-control-allow-origin"] == "https://tyrehero.com"
    assert "access-control-allow-origin" not in dev.headers


def test_101st_request_in_window_is_rate_limited(api_client):
    statuses = [api_client.get("/index.html").status_code for _ in range(100)]

    response = api_client.get("/index.html")

    assert statuses == [200] * 100
    assert response.status_code == 429
    assert response.text == "Too Many Requests"
    assert response.headers["x-frame-options"] == "DENY"


def test_read_failure_is_generic_500(api_client, monkeypatch):
    def boom(self):
        raise PermissionError(f"cannot read {self}")

    monkeypatch.setattr(pathlib.Path, "read_bytes", boom)

    response = api_client.get("/index.html")

    assert response.status_code == 500
    assert "Server Error" in response.text
    assert "cannot read" not in response.text


def test_rejection_reason_logged_not_returned(api_client, caplog):
    caplog.set_level(logging.INFO, logger="secure_site.server")

    response = api_client.get("/secret.html")

    assert response.status_code == 403
    rejected = [record for record in caplog.records if record.getMessage() == "request rejected"]
    assert rejected[0].reason == "unauthorized"
    assert rejected[0].path == "/secret.html"
    assert rejected[0].client_ip == "testclient"


def test_every_request_logged(api_client, caplog):
    caplog.set_level(logging.INFO, logger="secure_site.server")

    api_client.get("/", headers={"User-Agent": "pytest-agent"})

    request_lines = [record for record in caplog.records if record.getMessage() == "request"]
    assert len(request_lines) == 1
    assert request_lines[0].method == "GET"
    assert request_lines[0].user_agent == "pytest-agent"


def test_health_reports_status(api_client):
    response = api_client.get("/health")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert {"timestamp", "uptime", "pid"} <= data.keys()


def test_api_docs_are_not_exposed(api_client):
    assert api_client.get("/docs").status_code == 403
    assert api_client.get("/openapi.json").status_code == 403


def test_lifespan_runs_and_shuts_down(site_root):
    app = create_app(Settings(document_root=site_root))

    with TestClient(app) as client:
        assert client.get("/").status_code == 200
