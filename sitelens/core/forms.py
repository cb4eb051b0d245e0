# ==============================================================================
# Form Funnel Analyzer
# ==============================================================================
"""
Per-form funnel counts from form_start / form_submit / form_abandon events.

Events without a form_id property are grouped under "unknown-form".
"""

from collections import defaultdict
from collections.abc import Iterable

from sitelens.core.models import Event, FormReport, FormStats

FORM_START = "form_start"
FORM_SUBMIT = "form_submit"
FORM_ABANDON = "form_abandon"
FORM_EVENTS = (FORM_START, FORM_SUBMIT, FORM_ABANDON)


def conversion_rate(submissions: int, views: int) -> float:
    """Submissions per form view, as a percentage; 0 when there are no views."""
    if views <= 0:
        return 0.0
    return round(submissions / views * 100, 2)


class FormFunnelAnalyzer:
    """Aggregates form interaction events by form id."""

    def analyze(self, events: Iterable[Event]) -> FormReport:
        counts: dict[str, dict[str, int]] = defaultdict(lambda: dict.fromkeys(FORM_EVENTS, 0))
        for event in events:
            if event.event_name in FORM_EVENTS:
                counts[event.form_id][event.event_name] += 1

        forms = [
            FormStats(
                form_id=form_id,
                views=c[FORM_START],
                submissions=c[FORM_SUBMIT],
                abandons=c[FORM_ABANDON],
                conversion_rate=conversion_rate(c[FORM_SUBMIT], c[FORM_START]),
            )
            for form_id, c in counts.items()
        ]
        forms.sort(key=lambda f: (-f.submissions, f.form_id))
        return FormReport(forms=forms)
