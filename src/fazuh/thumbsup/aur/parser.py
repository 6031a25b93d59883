from bs4 import BeautifulSoup
from bs4 import Tag

from fazuh.thumbsup.error import ParseError
from fazuh.thumbsup.model import PackagePage
from fazuh.thumbsup.model import VotedPackageRecord
from fazuh.thumbsup.model import VotePage

# checkbox, name, version, votes, popularity, voted, notify, description, maintainer
_LISTING_COLUMNS = 9


def _soup(markup: str) -> BeautifulSoup:
    return BeautifulSoup(markup, "html.parser")


def extract_csrf_token(markup: str) -> str:
    """
    Extracts the anti-forgery token from a page's hidden `token` field.

    Raises:
        ParseError: If the page carries no token. Either the site changed its
            markup or the page is not the one we asked for.
    """
    field = _soup(markup).find("input", attrs={"name": "token"})
    if not isinstance(field, Tag):
        raise ParseError("CSRF token field not found.")

    token = field.get("value")
    if not isinstance(token, str) or not token.strip():
        raise ParseError("CSRF token field is empty.")
    return token.strip()


def is_logged_in(markup: str) -> bool:
    """Check if the page shows the logout control of an authenticated user."""
    return _soup(markup).select_one('a[href^="/logout"]') is not None


def extract_login_errors(markup: str) -> list[str]:
    """Returns the messages of the login form's error list, if any."""
    return [li.get_text(strip=True) for li in _soup(markup).select("ul.errorlist li")]


def _cell_link_text(cell: Tag) -> str:
    """Text of the first link in a cell, or the whole cell's text."""
    link = cell.find("a")
    if isinstance(link, Tag):
        return link.get_text(strip=True)
    return cell.get_text(strip=True)


def _parse_row(row: Tag, offset: int) -> VotedPackageRecord | None:
    cells = [td for td in row.find_all("td") if isinstance(td, Tag)]
    if not cells:
        return None
    if len(cells) < _LISTING_COLUMNS:
        raise ParseError(f"Package row has {len(cells)} columns, expected {_LISTING_COLUMNS}.")

    name = _cell_link_text(cells[1])
    if not name:
        raise ParseError("Package row without a name.")

    try:
        votes = int(cells[3].get_text(strip=True) or 0)
        popularity = float(cells[4].get_text(strip=True) or 0)
    except ValueError as e:
        raise ParseError(f"Malformed numeric column for {name}: {e}") from e

    return VotedPackageRecord(
        name=name,
        voted=cells[5].get_text(strip=True) == "Yes",
        offset=offset,
        version=cells[2].get_text(strip=True),
        votes=votes,
        popularity=popularity,
        notify=cells[6].get_text(strip=True) == "Yes",
        description=cells[7].get_text(strip=True),
        # Orphaned packages have a <span>orphan</span> instead of an account link
        maintainer=_cell_link_text(cells[8]),
    )


def _has_next(container: Tag) -> bool:
    # Disabled navigation controls are rendered as <span class="page">
    for nav in container.select(".pkglist-nav"):
        for link in nav.select("a.page"):
            if "next" in link.get_text(strip=True).lower():
                return True
    return False


def extract_voted_page(markup: str, offset: int = 0) -> VotePage:
    """
    Parses one page of the AUR package listing.

    Args:
        markup: The raw HTML string.
        offset: Listing offset the page was requested at.

    Returns:
        The package rows in listing order and whether a "Next" control is enabled.

    Raises:
        ParseError: If the results container is missing, which distinguishes a
            changed page shape from a listing with no packages.
    """
    soup = _soup(markup)
    container = soup.find("div", id="pkglist-results")
    if not isinstance(container, Tag):
        raise ParseError("Package listing container not found.")

    records: list[VotedPackageRecord] = []
    table = container.find("table", class_="results")
    if isinstance(table, Tag):
        body = table.find("tbody")
        rows = body.find_all("tr") if isinstance(body, Tag) else table.find_all("tr")
        for row in rows:
            if not isinstance(row, Tag):
                continue
            record = _parse_row(row, offset)
            if record is not None:
                records.append(record)

    return VotePage(records=tuple(records), offset=offset, has_next=_has_next(container))


def extract_package_page(markup: str) -> PackagePage:
    """
    Reads the vote controls of a package detail page.

    The vote form posts to `/pkgbase/<base>/vote/` with a `do_Vote` button, the
    unvote form to `/pkgbase/<base>/unvote/` with `do_UnVote`.
    """
    soup = _soup(markup)

    voted: bool | None = None
    token: str | None = None
    for form in soup.select('div#actionlist form[action$="vote/"]'):
        if form.find("input", attrs={"name": "do_UnVote"}):
            voted = True
        elif form.find("input", attrs={"name": "do_Vote"}):
            voted = False
        else:
            continue

        token_field = form.find("input", attrs={"name": "token"})
        if isinstance(token_field, Tag):
            value = token_field.get("value")
            token = value.strip() if isinstance(value, str) else None
        break

    pkgbase_path: str | None = None
    link = soup.select_one('table#pkginfo a[href*="/pkgbase/"]')
    if link is not None:
        href = link.get("href")
        if isinstance(href, str):
            pkgbase_path = href if href.endswith("/") else f"{href}/"

    return PackagePage(voted=voted, token=token or None, pkgbase_path=pkgbase_path)
