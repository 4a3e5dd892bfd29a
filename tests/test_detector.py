from __future__ import annotations

import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from ats_agent.detector import detect_fields, purpose_from_label, purpose_from_text  # noqa: E402
from ats_agent.document import DocumentSnapshot  # noqa: E402
from ats_agent.models import ElementKind, FieldPurpose  # noqa: E402
from ats_agent.rules import LABEL_MATCH_CONFIDENCE, TEXT_MATCH_CONFIDENCE  # noqa: E402


def _by_purpose(fields):
    return {field.purpose: field for field in fields}


def test_element_matching_several_rules_is_claimed_once() -> None:
    # Matches the first-name rule (autocomplete) and the email rule (name).
    doc = DocumentSnapshot.from_html('<input autocomplete="given-name" name="email_first">')

    fields = detect_fields(doc)

    assert len(fields) == 1
    assert fields[0].purpose is FieldPurpose.FIRST_NAME
    assert fields[0].confidence == 0.9


def test_no_node_appears_twice() -> None:
    doc = DocumentSnapshot.from_html(
        """
        <form>
          <input name="first_name"><input name="last_name"><input type="email" name="email">
          <input type="tel" name="phone"><input type="file" name="resume" accept=".pdf">
          <select name="sponsorship"><option>Yes</option></select>
          <button type="submit" aria-label="Submit application">Apply</button>
        </form>
        """
    )

    node_ids = [field.node_id for field in detect_fields(doc)]

    assert len(node_ids) == len(set(node_ids))


def test_unclaimed_select_is_matched_by_label_text() -> None:
    doc = DocumentSnapshot.from_html(
        """
        <label for="q1">Will you now or in the future require sponsorship?</label>
        <select id="q1"><option>Yes</option><option>No</option></select>
        <label for="q2">Favourite colour</label>
        <select id="q2"><option>Blue</option></select>
        """
    )

    fields = detect_fields(doc)

    assert len(fields) == 1
    assert fields[0].purpose is FieldPurpose.SPONSORSHIP
    assert fields[0].confidence == LABEL_MATCH_CONFIDENCE
    assert fields[0].element_kind is ElementKind.SELECT
    assert fields[0].selectors == ("label-based",)


def test_buttons_and_links_are_matched_by_text() -> None:
    doc = DocumentSnapshot.from_html(
        """
        <a href="/jobs/1">Apply for this job</a>
        <button>Skip for now</button>
        <button>Continue as guest</button>
        <button>Sign up</button>
        """
    )

    fields = _by_purpose(detect_fields(doc))

    assert fields[FieldPurpose.APPLY].element_kind is ElementKind.LINK
    assert fields[FieldPurpose.APPLY].href == "/jobs/1"
    assert fields[FieldPurpose.APPLY].confidence == TEXT_MATCH_CONFIDENCE
    assert FieldPurpose.SKIP in fields
    assert FieldPurpose.GUEST in fields
    assert len(fields) == 3


def test_selector_rule_wins_over_text_pass() -> None:
    doc = DocumentSnapshot.from_html('<button type="submit">Apply now</button>')

    fields = detect_fields(doc)

    assert [field.purpose for field in fields] == [FieldPurpose.SUBMIT]
    assert fields[0].element_kind is ElementKind.BUTTON


def test_detection_can_be_scoped_to_a_subtree() -> None:
    doc = DocumentSnapshot.from_html(
        '<input type="email" id="outside"><div role="dialog"><input name="first_name"></div>'
    )

    fields = detect_fields(doc, doc.select_one('[role="dialog"]'))

    assert [field.purpose for field in fields] == [FieldPurpose.FIRST_NAME]


def test_captcha_checkbox_kind() -> None:
    doc = DocumentSnapshot.from_html('<input type="checkbox" id="captcha-box">')

    fields = detect_fields(doc)

    assert fields[0].purpose is FieldPurpose.CAPTCHA
    assert fields[0].element_kind is ElementKind.CHECKBOX


def test_keyword_precedence() -> None:
    assert purpose_from_text("Autofill with Resume") is FieldPurpose.APPLY
    assert purpose_from_text("Submit") is FieldPurpose.SUBMIT
    assert purpose_from_text("Create account") is FieldPurpose.UNKNOWN
    assert purpose_from_text("") is FieldPurpose.UNKNOWN
    assert purpose_from_label("Do you hold an active security clearance?") is FieldPurpose.CLEARANCE
    assert purpose_from_label("Have you previously applied here?") is FieldPurpose.PREVIOUS_APPLICATION
