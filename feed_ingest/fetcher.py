"""Feed document download with an HTML-page guard."""

from urllib.parse import urlparse

import requests

from .config import FetchConfig
from .errors import FetchError, InvalidFeedUrlError, NotAFeedError
from .logging_config import create_execution_logger

FEED_ACCEPT = (
    "application/rss+xml, application/xml, text/xml, application/atom+xml, */*"
)
HTML_PREFIXES = ("<!doctype html", "<html")


def looks_like_html_page(text: str) -> bool:
    return text.lstrip("\ufeff \t\r\n").lower().startswith(HTML_PREFIXES)


class FeedFetcher:
    """Downloads raw RSS/Atom documents."""

    def __init__(
        self, config: FetchConfig | None = None, execution_id: str | None = None
    ):
        """Initialize FeedFetcher with configuration.

        Args:
            config: Timeout and User-Agent settings
            execution_id: Execution ID for logging context
        """
        self.config = config or FetchConfig()
        self.logger = create_execution_logger("fetcher", execution_id)
        self.session = requests.Session()
        self.session.headers.update(
            {"User-Agent": self.config.user_agent, "Accept": FEED_ACCEPT}
        )

        self.logger.info("FeedFetcher initialized", timeout=self.config.timeout)

    def fetch(self, feed_url: str) -> str:
        """Download a feed document.

        Args:
            feed_url: URL of the RSS/Atom feed

        Returns:
            The response body as text

        Raises:
            InvalidFeedUrlError: If the URL is not http(s) or has no host
            FetchError: If the download fails or the status is not 2xx
            NotAFeedError: If the body is an HTML page
        """
        parsed_url = urlparse(feed_url)
        if parsed_url.scheme not in ("http", "https") or not parsed_url.netloc:
            error_msg = f"Feed URL must be an http(s) URL: {feed_url}"
            self.logger.error(error_msg, feed_url=feed_url, scheme=parsed_url.scheme)
            raise InvalidFeedUrlError(error_msg)

        try:
            self.logger.info("Downloading feed content", feed_url=feed_url)
            response = self.session.get(feed_url, timeout=self.config.timeout)
            response.raise_for_status()
        except requests.HTTPError as e:
            status_code = e.response.status_code if e.response is not None else None
            self.logger.error(
                f"Feed host answered {status_code} for {feed_url}",
                feed_url=feed_url,
                status_code=status_code,
            )
            raise FetchError(
                f"Failed to fetch feed {feed_url}: HTTP {status_code}",
                status_code=status_code,
            ) from e
        except requests.RequestException as e:
            self.logger.error(
                f"Failed to download feed {feed_url}: {e}",
                feed_url=feed_url,
                error=str(e),
            )
            raise FetchError(f"Failed to fetch feed {feed_url}: {e}") from e

        text = response.text
        self.logger.info(
            "Feed downloaded successfully",
            feed_url=feed_url,
            status_code=response.status_code,
            content_length=len(text),
        )

        if looks_like_html_page(text):
            self.logger.warning("Feed URL returned an HTML page", feed_url=feed_url)
            raise NotAFeedError(
                f"The URL {feed_url} returned a web page instead of an RSS or "
                "Atom feed. Use the site's feed address instead, which usually "
                "ends in /feed/, /rss or /atom.xml (for example "
                "https://example.com/feed/)."
            )

        return text
