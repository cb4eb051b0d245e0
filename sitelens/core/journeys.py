# ==============================================================================
# Journey Graph Builder
# ==============================================================================
"""
Navigation-flow graph construction from in-session page order.

Every consecutive pair of pageviews in a session contributes one transition
between their normalized paths. All transitions are aggregated before the
presentation cap is applied, so truncation never changes the counts that
are reported.
"""

from collections import Counter
from collections.abc import Iterable

from sitelens.core.models import (
    JourneyEdge,
    JourneyReport,
    JourneyStats,
    PageCount,
    Session,
    TopPath,
)
from sitelens.core.touchpoints import normalize_path

DEFAULT_MAX_TRANSITIONS = 15
DEFAULT_TOP_PATHS_LIMIT = 50
DEFAULT_MAX_PATH_HOPS = 10


class JourneyGraphBuilder:
    """
    Builds a weighted transition graph between pages.

    Self-loops (a page followed by itself, e.g. a reload) are kept as edges
    unless collapse_self_loops is set, in which case consecutive repeats of
    a page are merged before edges, entry/exit pages and paths are derived.
    """

    def __init__(
        self,
        max_transitions: int | None = DEFAULT_MAX_TRANSITIONS,
        top_paths_limit: int = DEFAULT_TOP_PATHS_LIMIT,
        max_path_hops: int = DEFAULT_MAX_PATH_HOPS,
        collapse_self_loops: bool = False,
        pageview_events: Iterable[str] = ("pageview",),
    ):
        """
        Args:
            max_transitions: Number of transitions returned (None for all)
            top_paths_limit: Number of most frequent session paths returned
            max_path_hops: Session page sequences are truncated to this many pages
            collapse_self_loops: Merge back-to-back views of the same page
            pageview_events: Event names that count as page views
        """
        if max_path_hops < 1:
            raise ValueError("max_path_hops must be at least 1")
        self.max_transitions = max_transitions
        self.top_paths_limit = top_paths_limit
        self.max_path_hops = max_path_hops
        self.collapse_self_loops = collapse_self_loops
        self.pageview_events = frozenset(pageview_events)

    def page_sequence(self, session: Session) -> list[str]:
        """Normalized paths of a session's pageviews, in order."""
        pages = [normalize_path(e.url) for e in session.pageviews(self.pageview_events)]
        if not self.collapse_self_loops:
            return pages
        collapsed: list[str] = []
        for page in pages:
            if not collapsed or collapsed[-1] != page:
                collapsed.append(page)
        return collapsed

    def build(self, sessions: Iterable[Session]) -> JourneyReport:
        """
        Aggregate transitions, entry/exit pages and top paths.

        Args:
            sessions: Sessions produced by the Sessionizer

        Returns:
            JourneyReport; sessions without pageviews are ignored
        """
        transitions: Counter[tuple[str, str]] = Counter()
        entry_pages: Counter[str] = Counter()
        exit_pages: Counter[str] = Counter()
        top_paths: Counter[tuple[str, ...]] = Counter()
        visited: set[str] = set()
        total_sessions = 0
        total_pages = 0

        for session in sessions:
            pages = self.page_sequence(session)
            if not pages:
                continue

            total_sessions += 1
            total_pages += len(pages)
            visited.update(pages)
            entry_pages[pages[0]] += 1
            exit_pages[pages[-1]] += 1
            top_paths[tuple(pages[: self.max_path_hops])] += 1
            transitions.update(zip(pages, pages[1:]))

        edges = sorted(transitions.items(), key=lambda item: (-item[1], item[0]))
        if self.max_transitions is not None:
            edges = edges[: self.max_transitions]

        return JourneyReport(
            transitions=[JourneyEdge(from_path=src, to_path=dst, count=count) for (src, dst), count in edges],
            entry_pages=_page_counts(entry_pages),
            exit_pages=_page_counts(exit_pages),
            top_paths=[
                TopPath(path=list(path), count=count)
                for path, count in sorted(top_paths.items(), key=lambda item: (-item[1], item[0]))[
                    : self.top_paths_limit
                ]
            ],
            stats=JourneyStats(
                total_sessions=total_sessions,
                avg_pages_per_session=round(total_pages / total_sessions, 2) if total_sessions else 0.0,
                total_transitions=sum(transitions.values()),
                unique_pages=len(visited),
            ),
        )


def _page_counts(counter: Counter[str]) -> list[PageCount]:
    return [
        PageCount(page=page, count=count)
        for page, count in sorted(counter.items(), key=lambda item: (-item[1], item[0]))
    ]
