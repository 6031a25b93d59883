import time
from collections.abc import Callable
from urllib.parse import quote
from urllib.parse import urljoin
from urllib.parse import urlparse

from loguru import logger
import requests

from fazuh.thumbsup.aur.parser import extract_csrf_token
from fazuh.thumbsup.aur.parser import extract_login_errors
from fazuh.thumbsup.aur.parser import extract_package_page
from fazuh.thumbsup.aur.parser import extract_voted_page
from fazuh.thumbsup.aur.parser import is_logged_in
from fazuh.thumbsup.aur.path import Path
from fazuh.thumbsup.error import ActionError
from fazuh.thumbsup.error import ActionNetworkError
from fazuh.thumbsup.error import ActionParseError
from fazuh.thumbsup.error import AuthError
from fazuh.thumbsup.error import AuthNetworkError
from fazuh.thumbsup.error import FetchError
from fazuh.thumbsup.error import FetchNetworkError
from fazuh.thumbsup.error import FetchParseError
from fazuh.thumbsup.error import InvalidCredentialsError
from fazuh.thumbsup.error import NetworkError
from fazuh.thumbsup.error import NotAuthorizedError
from fazuh.thumbsup.error import ParseError
from fazuh.thumbsup.error import SessionExpiredError
from fazuh.thumbsup.error import ThumbsupError
from fazuh.thumbsup.model import ActionStatus
from fazuh.thumbsup.model import Credentials
from fazuh.thumbsup.model import VotePage

USER_AGENT = "thumbsup/0.1.0"


class AurClient:
    """Authenticated web session against the AUR.

    Owns the cookie jar, the current CSRF token and the authenticated flag for
    one program invocation. State-changing calls (login, vote, unvote) must be
    serialized by the caller. `package_exists` goes through a short-lived session
    without cookies, so it may run from several threads.
    """

    def __init__(
        self,
        base_url: str = Path.HOSTNAME,
        page_size: int = 250,
        timeout: float = 30.0,
        max_attempts: int = 3,
        backoff: float = 1.0,
        session: requests.Session | None = None,
        session_factory: Callable[[], requests.Session] = requests.Session,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1.")

        self.base_url = base_url.rstrip("/")
        self.page_size = page_size
        self.timeout = timeout
        self.max_attempts = max_attempts
        self.backoff = backoff

        self._session_factory = session_factory
        self.session = session if session is not None else session_factory()
        self.session.headers.update({"User-Agent": USER_AGENT})
        self.csrf_token: str | None = None
        self.authenticated = False

    def close(self):
        self.session.close()

    def login(self, credentials: Credentials):
        """Logs in with a username and password.

        Raises:
            InvalidCredentialsError: The site rejected the credentials. Not retryable.
            AuthNetworkError: The site could not be reached after all attempts.
            AuthError: The login page no longer has the expected shape.
        """
        self.authenticated = False
        self.csrf_token = None
        logger.debug(f"Logging in as {credentials.username}")

        try:
            page = self._request("GET", Path.LOGIN)
            try:
                token = extract_csrf_token(page.text)
            except ParseError as e:
                raise AuthError(f"Unexpected login page: {e}") from e

            response = self._request(
                "POST",
                Path.LOGIN,
                data={
                    "user": credentials.username,
                    "passwd": credentials.password,
                    "remember_me": "on",
                    "next": "/",
                    "token": token,
                },
            )
        except NetworkError as e:
            raise AuthNetworkError(str(e)) from e

        if not is_logged_in(response.text):
            errors = extract_login_errors(response.text)
            reason = ", ".join(errors) if errors else "no logged-in marker in response"
            raise InvalidCredentialsError(f"Login failed: {reason}")

        self.csrf_token = token
        self._refresh_token(response.text)
        self.authenticated = True
        logger.info(f"Logged in as {credentials.username}.")

    def logout(self):
        """Ends the session. Best effort: failures are logged, never raised."""
        if not self.authenticated:
            return
        self.authenticated = False
        try:
            response = self._request("GET", Path.LOGOUT)
        except ThumbsupError as e:
            logger.warning(f"Logout failed: {e}")
            return
        if response.status_code >= 400:
            logger.warning(f"Logout failed: HTTP {response.status_code}")
        else:
            logger.debug("Logged out.")

    def fetch_voted_page(self, offset: int) -> VotePage:
        """Fetches one page of the voted-first package listing.

        Raises:
            SessionExpiredError: Not logged in, or the site sent us back to the login page.
            FetchParseError: The listing no longer has the expected shape.
            FetchNetworkError: The site could not be reached after all attempts.
        """
        self._require_auth()
        try:
            response = self._request(
                "GET", Path.PACKAGES, params=Path.voted_listing_params(offset, self.page_size)
            )
        except NetworkError as e:
            raise FetchNetworkError(str(e)) from e

        self._check_session(response)
        if response.status_code != 200:
            raise FetchError(f"Unexpected HTTP {response.status_code} for listing at {offset}.")

        try:
            page = extract_voted_page(response.text, offset)
        except ParseError as e:
            raise FetchParseError(f"Listing at offset {offset}: {e}") from e

        logger.debug(f"Offset {offset}: {len(page.records)} rows, has_next={page.has_next}")
        return page

    def package_exists(self, name: str) -> bool:
        """Check if a package has a detail page on the AUR. Needs no login."""
        session = self._session_factory()
        session.headers.update({"User-Agent": USER_AGENT})
        try:
            response = self._request("GET", self._package_path(name), session=session)
        except NetworkError as e:
            raise FetchNetworkError(str(e)) from e
        finally:
            session.close()

        if response.status_code == 404:
            return False
        if response.status_code == 200:
            return True
        raise FetchError(f"Unexpected HTTP {response.status_code} for package {name}.")

    def vote_state(self, name: str) -> bool | None:
        """Returns True if voted, False if not voted, None if the package is not available."""
        self._require_auth()
        try:
            response = self._request("GET", self._package_path(name))
        except NetworkError as e:
            raise FetchNetworkError(str(e)) from e

        if response.status_code == 404:
            return None
        self._check_session(response)
        return extract_package_page(response.text).voted

    def vote(self, name: str) -> ActionStatus:
        """Votes for a package. Voting an already voted package is a no-op.

        Raises:
            SessionExpiredError: The session must be re-established before retrying.
            NotAuthorizedError: The site does not offer the vote action.
            ActionParseError: The page or the confirmation could not be read.
            ActionNetworkError: The site could not be reached after all attempts.
        """
        return self._cast(name, vote=True)

    def unvote(self, name: str) -> ActionStatus:
        """Removes the vote from a package. Unvoting a not voted package is a no-op."""
        return self._cast(name, vote=False)

    def _cast(self, name: str, vote: bool) -> ActionStatus:
        self._require_auth()
        verb = "vote" if vote else "unvote"

        try:
            response = self._request("GET", self._package_path(name))
        except NetworkError as e:
            raise ActionNetworkError(str(e)) from e

        if response.status_code == 404:
            return ActionStatus.NOT_AVAILABLE
        self._check_session(response)

        page = extract_package_page(response.text)
        if page.voted is None:
            raise NotAuthorizedError(f"No vote control offered for {name}.")
        if page.voted == vote:
            return ActionStatus.ALREADY_VOTED if vote else ActionStatus.ALREADY_UNVOTED

        token = page.token or self.csrf_token
        if not token:
            raise ActionParseError(f"No CSRF token on the page of {name}.")
        if not page.pkgbase_path:
            raise ActionParseError(f"Cannot find the package base of {name}.")
        self.csrf_token = token

        action = Path.VOTE if vote else Path.UNVOTE
        button = "do_Vote" if vote else "do_UnVote"
        try:
            response = self._request(
                "POST", page.pkgbase_path + action, data={"token": token, button: name}
            )
        except NetworkError as e:
            raise ActionNetworkError(str(e)) from e

        if response.status_code in (401, 403):
            raise NotAuthorizedError(f"Cannot {verb} {name}: HTTP {response.status_code}.")
        if response.status_code >= 400:
            raise ActionError(f"Cannot {verb} {name}: HTTP {response.status_code}.")
        self._check_session(response)

        confirmed = extract_package_page(response.text)
        if confirmed.voted is None:
            raise ActionParseError(f"Cannot read the vote state of {name} after {verb}.")
        if confirmed.voted != vote:
            raise ActionError(f"The site did not confirm the {verb} of {name}.")
        if confirmed.token:
            self.csrf_token = confirmed.token

        logger.debug(f"{verb.capitalize()}d {name}")
        return ActionStatus.VOTED if vote else ActionStatus.UNVOTED

    def _package_path(self, name: str) -> str:
        if not name:
            raise ValueError("Package name must not be empty.")
        return Path.PACKAGE.format(name=quote(name, safe=""))

    def _require_auth(self):
        if not self.authenticated:
            raise SessionExpiredError("Not logged in.")

    def _check_session(self, response: requests.Response):
        """Marks the session expired if the site answered with the login page."""
        redirected_to_login = urlparse(response.url).path.rstrip("/") == Path.LOGIN
        if redirected_to_login or not is_logged_in(response.text):
            self.authenticated = False
            raise SessionExpiredError(f"Session expired at {response.url}.")
        self._refresh_token(response.text)

    def _refresh_token(self, markup: str):
        try:
            self.csrf_token = extract_csrf_token(markup)
        except ParseError:
            pass  # not every page carries a token

    def _request(
        self,
        method: str,
        path: str,
        params: dict[str, str] | None = None,
        data: dict[str, str] | None = None,
        session: requests.Session | None = None,
    ) -> requests.Response:
        """Sends a request, retrying timeouts, connection errors and 5xx with backoff.

        Raises:
            NetworkError: When every attempt failed with a retryable error, or
                the request failed with a non-retryable transport error.
        """
        url = urljoin(self.base_url + "/", path.lstrip("/"))
        session = session if session is not None else self.session
        error = ""
        for attempt in range(1, self.max_attempts + 1):
            try:
                response = session.request(
                    method, url, params=params, data=data, timeout=self.timeout
                )
            except (requests.Timeout, requests.ConnectionError) as e:
                error = f"{type(e).__name__}: {e}"
            except requests.RequestException as e:
                raise NetworkError(f"{method} {url} failed: {e}") from e
            else:
                if response.status_code < 500:
                    return response
                error = f"HTTP {response.status_code}"

            if attempt < self.max_attempts:
                delay = self.backoff * 2 ** (attempt - 1)
                logger.warning(
                    f"{method} {url} failed ({error}). "
                    f"Retry {attempt}/{self.max_attempts - 1} in {delay:.1f}s"
                )
                time.sleep(delay)

        raise NetworkError(f"{method} {url} failed after {self.max_attempts} attempts: {error}")
