from collections import defaultdict
from pathlib import Path
from unittest.mock import MagicMock
from urllib.parse import urlparse

import pytest
import requests

BASE_URL = "https://aur.test"
MOCK_DIR = Path(__file__).parent / "mock"


def pytest_addoption(parser):
    parser.addoption("--run-manual", action="store_true", default=False, help="run manual tests")
    parser.addoption(
        "--run-network", action="store_true", default=False, help="run tests against the live AUR"
    )


def pytest_configure(config):
    config.addinivalue_line("markers", "manual: mark test as manual to run")
    config.addinivalue_line("markers", "network: mark test as needing the live AUR")


def pytest_collection_modifyitems(config, items):
    skip_manual = pytest.mark.skip(reason="need --run-manual option to run")
    skip_network = pytest.mark.skip(reason="need --run-network option to run")

    run_manual = config.getoption("--run-manual")
    run_network = config.getoption("--run-network")

    for item in items:
        if "manual" in item.keywords and not run_manual:
            item.add_marker(skip_manual)
        if "network" in item.keywords and not run_network:
            item.add_marker(skip_network)


def _make_response(path: str, text: str = "", status: int = 200) -> requests.Response:
    response = requests.Response()
    response.status_code = status
    response._content = text.encode("utf-8")
    response.encoding = "utf-8"
    response.url = f"{BASE_URL}{path}"
    return response


def _listing_html(rows: list[tuple[str, bool]], has_next: bool, orphans: tuple[str, ...] = ()) -> str:
    """Builds an AUR search result page with (name, voted) rows."""
    nav = (
        '<a class="page" href="/packages/?O=250">Next ›</a>'
        if has_next
        else '<span class="page">Next ›</span>'
    )
    body = []
    for i, (name, voted) in enumerate(rows):
        maintainer = (
            "<span>orphan</span>" if name in orphans else f'<a href="/account/m{i}">m{i}</a>'
        )
        body.append(
            f"""
            <tr class="{'odd' if i % 2 else 'even'}">
              <td><input type="checkbox" name="IDs[{i}]" value="1"></td>
              <td><a href="/packages/{name}">{name}</a></td>
              <td>1.{i}-1</td>
              <td>{10 + i}</td>
              <td>0.{i}5</td>
              <td>{'Yes' if voted else ''}</td>
              <td>No</td>
              <td class="wrap">Package {name}</td>
              <td>{maintainer}</td>
            </tr>"""
        )
    return f"""
    <html><body>
      <div id="archdev-navbar"><ul><li><a href="/logout/">Logout</a></li></ul></div>
      <div id="pkglist-results" class="box">
        <div class="pkglist-stats">
          <p class="pkglist-nav"><span class="page">‹ Previous</span> {nav}</p>
        </div>
        <table class="results">
          <thead><tr><th>&nbsp;</th><th>Name</th><th>Version</th><th>Votes</th>
            <th>Popularity</th><th>Voted</th><th>Notify</th><th>Description</th>
            <th>Maintainer</th></tr></thead>
          <tbody>{''.join(body)}</tbody>
        </table>
      </div>
    </body></html>
    """


def _package_html(name: str, voted: bool | None, token: str = "pkg-token", logged_in: bool = True) -> str:
    """Builds an AUR package detail page; `voted=None` renders no vote form."""
    logout = '<li><a href="/logout/">Logout</a></li>' if logged_in else ""
    form = ""
    if voted is True:
        form = f"""<li><form action="/pkgbase/{name}/unvote/" method="post">
            <input type="hidden" name="token" value="{token}" />
            <input type="submit" class="button text-button" name="do_UnVote" value="Remove vote" />
          </form></li>"""
    elif voted is False:
        form = f"""<li><form action="/pkgbase/{name}/vote/" method="post">
            <input type="hidden" name="token" value="{token}" />
            <input type="submit" class="button text-button" name="do_Vote" value="Vote for this package" />
          </form></li>"""
    return f"""
    <html><body>
      <div id="archdev-navbar"><ul><li><a href="/packages/">Packages</a></li>{logout}</ul></div>
      <div id="pkgdetails" class="box">
        <h2>Package Details: {name} 1.0-1</h2>
        <div id="detailslinks" class="listing">
          <div id="actionlist">
            <h4>Package Actions</h4>
            <ul class="small">
              <li><a href="/cgit/aur.git/tree/PKGBUILD?h={name}">View PKGBUILD</a></li>
              {form}
            </ul>
          </div>
        </div>
        <table id="pkginfo">
          <tr><th>Git Clone URL:</th><td>https://aur.archlinux.org/{name}.git</td></tr>
          <tr><th>Package Base:</th><td><a href="/pkgbase/{name}">{name}</a></td></tr>
        </table>
      </div>
    </body></html>
    """


class FakeAur:
    """Replays queued responses per (method, path) through a mocked requests.Session.

    The last queued result for a route is repeated once the others are used up.
    Exceptions in the queue are raised instead of returned. Sessions made by
    `new_session` share the same routes; `calls` covers all of them.
    """

    def __init__(self):
        self.routes: dict[tuple[str, str], list] = defaultdict(list)
        self.extra_sessions: list[MagicMock] = []
        self.session = self._make_session()

    def _make_session(self) -> MagicMock:
        session = MagicMock(spec=requests.Session)
        session.headers = {}
        session.request.side_effect = self._request
        return session

    def new_session(self) -> MagicMock:
        session = self._make_session()
        self.extra_sessions.append(session)
        return session

    def add(self, method: str, path: str, *results):
        self.routes[(method, path)].extend(results)

    def calls(self, method: str | None = None, path: str | None = None) -> list:
        result = []
        sessions = [self.session, *self.extra_sessions]
        for call in (c for s in sessions for c in s.request.call_args_list):
            call_method, url = call.args[:2]
            if method and call_method != method:
                continue
            if path and urlparse(url).path != path:
                continue
            result.append(call)
        return result

    def _request(self, method, url, params=None, data=None, timeout=None):
        path = urlparse(url).path
        queue = self.routes.get((method, path))
        if not queue:
            raise AssertionError(f"Unexpected request: {method} {path}")
        result = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(result, Exception):
            raise result
        return result


@pytest.fixture
def mock_html():
    def read(name: str) -> str:
        return (MOCK_DIR / name).read_text(encoding="utf-8")

    return read


@pytest.fixture
def fake_aur():
    return FakeAur()


@pytest.fixture
def make_response():
    return _make_response


@pytest.fixture
def listing_html():
    return _listing_html


@pytest.fixture
def package_html():
    return _package_html
