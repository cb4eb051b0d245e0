# ==============================================================================
# Tests for FormFunnelAnalyzer
# ==============================================================================
"""
Unit tests for per-form funnel counts.
"""

from sitelens.core.forms import FormFunnelAnalyzer, conversion_rate


def _form(make_event, name, form_id=None, minutes=0):
    properties = {"form_id": form_id} if form_id is not None else {}
    return make_event(event_name=name, minutes=minutes, properties=properties)


class TestFormFunnel:
    def test_counts_per_form(self, make_event):
        events = [
            _form(make_event, "form_start", "signup"),
            _form(make_event, "form_start", "signup"),
            _form(make_event, "form_start", "signup"),
            _form(make_event, "form_start", "signup"),
            _form(make_event, "form_submit", "signup"),
            _form(make_event, "form_abandon", "signup"),
            _form(make_event, "form_start", "contact"),
        ]
        report = FormFunnelAnalyzer().analyze(events)

        signup = next(f for f in report.forms if f.form_id == "signup")
        assert (signup.views, signup.submissions, signup.abandons) == (4, 1, 1)
        assert signup.conversion_rate == 25.0

        contact = next(f for f in report.forms if f.form_id == "contact")
        assert contact.conversion_rate == 0.0

    def test_missing_form_id_grouped_as_unknown(self, make_event):
        events = [
            _form(make_event, "form_start"),
            _form(make_event, "form_submit", ""),
        ]
        report = FormFunnelAnalyzer().analyze(events)
        assert [f.form_id for f in report.forms] == ["unknown-form"]
        assert report.forms[0].submissions == 1

    def test_sorted_by_submissions(self, make_event):
        events = [
            _form(make_event, "form_submit", "newsletter"),
            _form(make_event, "form_submit", "checkout"),
            _form(make_event, "form_submit", "checkout"),
            _form(make_event, "form_start", "alpha"),
        ]
        report = FormFunnelAnalyzer().analyze(events)
        assert [f.form_id for f in report.forms] == ["checkout", "newsletter", "alpha"]

    def test_submissions_without_views(self, make_event):
        report = FormFunnelAnalyzer().analyze([_form(make_event, "form_submit", "embed")])
        assert report.forms[0].conversion_rate == 0.0

    def test_ignores_other_events(self, make_event):
        report = FormFunnelAnalyzer().analyze([make_event(), make_event(event_name="conversion")])
        assert report.forms == []

    def test_properties_from_json_text(self, make_event):
        event = make_event(event_name="form_start", properties='{"form_id": "demo-request"}')
        report = FormFunnelAnalyzer().analyze([event])
        assert report.forms[0].form_id == "demo-request"

    def test_serializes_with_dashboard_keys(self, make_event):
        report = FormFunnelAnalyzer().analyze([_form(make_event, "form_start", "signup")])
        data = report.model_dump(by_alias=True)["forms"][0]
        assert data == {
            "formId": "signup",
            "views": 1,
            "submissions": 0,
            "abandons": 0,
            "conversionRate": 0.0,
        }


class TestConversionRate:
    def test_percentage(self):
        assert conversion_rate(1, 3) == 33.33

    def test_no_views(self):
        assert conversion_rate(0, 0) == 0.0
