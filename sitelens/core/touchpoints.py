# ==============================================================================
# Touchpoint Classification
# ==============================================================================
"""
Marketing-channel classification and page path normalization.

Both functions here are total: malformed referrers map to the "Unknown"
channel and malformed URLs fall back to the raw string, so a single bad
event can never abort an aggregation.

Classification policy, evaluated in order:
1. utm_source present      -> (utm_source, utm_medium or "utm")
2. no referrer / same site -> ("Direct", "none")
3. search engine referrer  -> ("Organic Search", "organic")
4. social network referrer -> ("Social", "social")
5. anything else           -> (referrer host, "referral")
"""

import logging
from urllib.parse import urlsplit

from sitelens.core.models import Event, Touchpoint

logger = logging.getLogger(__name__)

DIRECT = ("Direct", "none")
UNKNOWN = ("Unknown", "unknown")
ORGANIC_SEARCH = ("Organic Search", "organic")
SOCIAL = ("Social", "social")

# Search brands, matched as the registrable label of the referrer host so that
# country domains (google.co.uk, yandex.ru) are covered. Only the bare domain
# and SEARCH_SUBDOMAINS count; docs.google.com is a referral.
SEARCH_ENGINES = frozenset(
    {
        "google",
        "bing",
        "duckduckgo",
        "baidu",
        "yandex",
        "ecosia",
        "startpage",
        "qwant",
        "naver",
        "seznam",
        "kagi",
    }
)

# Brands whose search lives under a search. subdomain (search.yahoo.co.jp,
# uk.search.yahoo.com, search.brave.com); their other hosts are not search.
SEARCH_PREFIXED_ENGINES = frozenset({"yahoo", "brave"})

SEARCH_SUBDOMAINS = frozenset({"search", "m", "cn", "html", "lite", "images"})

# Matched as a domain suffix of the referrer host.
SOCIAL_NETWORKS = frozenset(
    {
        "facebook.com",
        "fb.me",
        "instagram.com",
        "twitter.com",
        "x.com",
        "t.co",
        "linkedin.com",
        "lnkd.in",
        "reddit.com",
        "pinterest.com",
        "tiktok.com",
        "youtube.com",
        "youtu.be",
        "snapchat.com",
        "threads.net",
        "mastodon.social",
        "bsky.app",
        "news.ycombinator.com",
        "vk.com",
        "weibo.com",
    }
)


def extract_host(url: str | None) -> str | None:
    """
    Extract a normalized host from a URL.

    Lowercases the host and strips the port and a leading "www.".

    Returns:
        The host, or None when the URL has no parseable host
    """
    if not isinstance(url, str) or not url.strip():
        return None
    text = url.strip()
    if "://" not in text and not text.startswith("//"):
        text = f"//{text}"
    try:
        host = urlsplit(text).hostname
    except ValueError:
        return None
    if not host or ("." not in host and host != "localhost"):
        return None
    if host.startswith("www."):
        host = host[4:]
    return host


def _is_search_engine(host: str) -> bool:
    labels = host.split(".")
    for i, label in enumerate(labels[:-1]):
        suffix = labels[i + 1 :]
        # Public suffix: com, ru, co.uk, com.br
        if len(suffix) > 2 or any(len(part) > 3 for part in suffix):
            continue
        subdomains = labels[:i]
        if label in SEARCH_PREFIXED_ENGINES:
            return "search" in subdomains
        if label in SEARCH_ENGINES:
            return all(sub in SEARCH_SUBDOMAINS for sub in subdomains)
    return False


def _is_social_network(host: str) -> bool:
    return any(host == domain or host.endswith(f".{domain}") for domain in SOCIAL_NETWORKS)


def classify(
    referrer: str | None,
    utm_source: str | None = None,
    utm_medium: str | None = None,
    site_host: str | None = None,
) -> tuple[str, str]:
    """
    Derive a (channel, medium) pair from referrer and UTM fields.

    Args:
        referrer: Referring URL, if any
        utm_source: utm_source campaign tag
        utm_medium: utm_medium campaign tag
        site_host: Host of the tracked site, used to detect same-site referrers

    Returns:
        (channel, medium); ("Unknown", "unknown") for malformed input
    """
    try:
        if utm_source is not None and not isinstance(utm_source, str):
            return UNKNOWN
        if utm_source and utm_source.strip():
            medium = utm_medium.strip() if isinstance(utm_medium, str) and utm_medium.strip() else "utm"
            return utm_source.strip(), medium

        if referrer is None or (isinstance(referrer, str) and not referrer.strip()):
            return DIRECT

        host = extract_host(referrer)
        if host is None:
            logger.debug("Unparseable referrer %r", referrer)
            return UNKNOWN

        if site_host and host == extract_host(site_host):
            return DIRECT
        if _is_search_engine(host):
            return ORGANIC_SEARCH
        if _is_social_network(host):
            return SOCIAL
        return host, "referral"
    except (AttributeError, TypeError, ValueError) as e:
        logger.debug("Failed to classify referrer %r: %s", referrer, e)
        return UNKNOWN


def is_external_referrer(event: Event) -> bool:
    """True if the event carries a referrer that is not the site itself."""
    if not event.referrer:
        return False
    host = extract_host(event.referrer)
    return host is None or host != extract_host(event.url)


def is_touchpoint(event: Event, is_session_entry: bool = False) -> bool:
    """
    Decide whether an event represents channel-attributable traffic.

    An event is a touchpoint when it carries UTM parameters, an external
    referrer, or is the entry event of a session.
    """
    return is_session_entry or bool(event.utm_source) or is_external_referrer(event)


def to_touchpoint(event: Event) -> Touchpoint:
    """Classify an event into a touchpoint."""
    channel, medium = classify(
        event.referrer,
        event.utm_source,
        event.utm_medium,
        site_host=extract_host(event.url),
    )
    return Touchpoint(
        channel=channel,
        medium=medium,
        campaign=event.utm_campaign,
        source=event.utm_source,
        occurred_at=event.created_at,
        visitor_id=event.visitor_id,
        event_id=event.id,
    )


def normalize_path(url: str) -> str:
    """
    Reduce a page URL to a path-only string.

    Query strings and fragments are stripped. URLs with a host (absolute or
    protocol-relative) become their path ("/" when empty). Bare paths are
    treated as already normalized; a bare query or fragment is the root page.
    Anything that fails to parse, or has a scheme but no host, is returned
    unchanged.
    """
    if not isinstance(url, str):
        return str(url)
    try:
        parts = urlsplit(url)
    except ValueError:
        return url
    if parts.netloc:
        return parts.path or "/"
    if parts.scheme:
        # mailto:, tel: and similar have no page path
        return url
    if parts.path:
        return parts.path
    return "/" if parts.query or parts.fragment else url
