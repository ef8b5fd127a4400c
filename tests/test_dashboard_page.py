import json
import os
import subprocess
import sys
import threading
import time
import urllib.request
from datetime import datetime, timedelta, timezone
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path

import pytest
from playwright.sync_api import Browser, Error as PlaywrightError, sync_playwright

pytestmark = pytest.mark.e2e

ROOT = Path(__file__).resolve().parents[1]
PORT = 8510
API_PORT = 8511
URL = f"http://localhost:{PORT}"
API_URL = f"http://localhost:{API_PORT}"


def _iso(hours_ago: float) -> str:
    moment = datetime.now(timezone.utc) - timedelta(hours=hours_ago)
    return moment.isoformat().replace("+00:00", "Z")


USERS = [
    {
        "user_id": 1,
        "full_name": "Jordan Reyes",
        "email": "jordan@example.com",
        "created_at": _iso(2),
        "last_active": _iso(1),
        "is_active": True,
    },
    {
        "user_id": 2,
        "full_name": "Priya Shah",
        "email": "priya@example.com",
        "created_at": _iso(24 * 40),
        "last_active": _iso(24 * 5),
        "is_active": False,
    },
]

TICKETS = [
    {
        "ticket_id": 101,
        "user_id": 1,
        "subject": "Cannot sync workouts",
        "message": "My workouts stopped syncing yesterday.",
        "status": "new",
        "category": "technical",
        "created_at": _iso(3),
    },
    {
        "ticket_id": 102,
        "user_id": 2,
        "subject": "Refund request",
        "message": "I was charged twice.",
        "status": "resolved",
        "category": "billing",
        "created_at": _iso(30),
        "admin_response": "Refund issued.",
    },
]


class StubApiHandler(BaseHTTPRequestHandler):
    updates: list = []

    def _send_json(self, status: int, payload) -> None:
        body = json.dumps(payload).encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def do_GET(self):
        if self.path == "/api/users":
            self._send_json(200, USERS)
        elif self.path == "/api/support-tickets":
            self._send_json(200, TICKETS)
        else:
            self._send_json(404, {"detail": "not found"})

    def do_PUT(self):
        length = int(self.headers.get("Content-Length", 0))
        body = json.loads(self.rfile.read(length) or b"{}")
        ticket_id = int(self.path.rsplit("/", 1)[-1])
        StubApiHandler.updates.append((ticket_id, body, self.headers.get("Authorization")))
        self._send_json(200, {"ticket_id": ticket_id, **body})

    def log_message(self, format, *args):
        pass


def wait_for_server(url: str, timeout: float = 60.0) -> None:
    start = time.time()
    while time.time() - start < timeout:
        try:
            with urllib.request.urlopen(url):
                return
        except Exception:
            time.sleep(0.5)
    raise TimeoutError(f"Server at {url} not ready after {timeout} seconds.")


def wait_for_update(count: int, timeout: float = 15.0) -> None:
    start = time.time()
    while time.time() - start < timeout:
        if len(StubApiHandler.updates) >= count:
            return
        time.sleep(0.2)
    raise TimeoutError(f"Expected {count} ticket updates, saw {StubApiHandler.updates}")


@pytest.fixture(scope="session")
def stub_api():
    server = ThreadingHTTPServer(("localhost", API_PORT), StubApiHandler)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    yield server
    server.shutdown()
    server.server_close()


@pytest.fixture(scope="session")
def streamlit_server(stub_api, tmp_path_factory):
    env = os.environ.copy()
    env["STREAMLIT_SERVER_HEADLESS"] = "true"
    env["STREAMLIT_SERVER_PORT"] = str(PORT)
    env["ADMIN_API_URL"] = API_URL
    env["ADMIN_API_TOKEN"] = "e2e-token"
    env["ADMIN_API_TOKEN_FILE"] = str(tmp_path_factory.mktemp("auth") / "missing-token")
    env["ADMIN_DISPLAY_NAME"] = "Taylor"

    process = subprocess.Popen(
        [
            sys.executable,
            "-m",
            "streamlit",
            "run",
            "dashboard.py",
            f"--server.port={PORT}",
            "--server.headless=true",
        ],
        cwd=ROOT,
        env=env,
        stdout=subprocess.PIPE,
        stderr=subprocess.STDOUT,
    )

    wait_for_server(URL)
    yield
    process.terminate()
    try:
        process.wait(timeout=10)
    except subprocess.TimeoutExpired:
        process.kill()


@pytest.fixture(scope="session")
def browser(streamlit_server):
    with sync_playwright() as playwright:
        try:
            browser = playwright.chromium.launch()
        except PlaywrightError as exc:
            pytest.skip(f"Chromium is not available: {exc}")
        yield browser
        browser.close()


@pytest.fixture()
def page(browser: Browser):
    page = browser.new_page()
    page.goto(URL, wait_until="networkidle")
    page.wait_for_selector("text=Welcome, Taylor!")
    yield page
    page.close()


def test_dashboard_sections_render(page):
    page.wait_for_selector("text=Recent Registrations")
    page.wait_for_selector("text=Support Tickets")
    assert page.locator("text=Cannot sync workouts").count() > 0
    assert page.locator('[data-testid="stVegaLiteChart"]').count() >= 2


def test_viewing_new_ticket_then_marking_in_progress(page):
    StubApiHandler.updates.clear()

    page.get_by_role("button", name="View").first.click()
    page.wait_for_selector("text=Ticket #101 - Cannot sync workouts")
    wait_for_update(1)
    ticket_id, body, auth = StubApiHandler.updates[0]
    assert ticket_id == 101
    assert body == {"status": "open"}
    assert auth == "Bearer e2e-token"

    dialog = page.get_by_role("dialog")
    dialog.get_by_label("Admin Response:").fill("Looking into the sync issue.")
    dialog.get_by_role("button", name="Mark In Progress").click()
    wait_for_update(2)
    ticket_id, body, _ = StubApiHandler.updates[1]
    assert ticket_id == 101
    assert body == {"status": "in_progress", "admin_response": "Looking into the sync issue."}
    page.wait_for_selector("text=Ticket #101 marked as in-progress.")
