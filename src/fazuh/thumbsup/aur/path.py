class Path:
    """URL constants for the AUR web interface.

    Paths are relative to the configured hostname so the client can be pointed
    at a mirror or a local aurweb instance.
    """

    HOSTNAME = "https://aur.archlinux.org"
    LOGIN = "/login"
    LOGOUT = "/logout/"
    PACKAGES = "/packages/"
    PACKAGE = "/packages/{name}"
    VOTE = "vote/"
    UNVOTE = "unvote/"

    @staticmethod
    def voted_listing_params(offset: int, page_size: int) -> dict[str, str]:
        """Query for the package search sorted by the user's votes, voted first."""
        return {
            "O": str(offset),
            "SeB": "nd",
            "SB": "w",
            "SO": "d",
            "PP": str(page_size),
            "do_Search": "Go",
        }
