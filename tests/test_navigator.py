from __future__ import annotations

import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from ats_agent.models import FieldPurpose, IdentityProfile, NavigationReason, PageType, ResumeFile  # noqa: E402
from ats_agent.navigator import Navigator, NavigationState, element_identity, intelligent_navigate  # noqa: E402
from ats_agent.document import DocumentSnapshot  # noqa: E402
from ats_agent.notifications import NAVIGATION_COMPLETE, NAVIGATION_FAILED, NAVIGATION_STARTING, EventChannel  # noqa: E402
from ats_agent.robustness import ElementNotInteractableError  # noqa: E402

import pages  # noqa: E402
from fake_session import FakeSession  # noqa: E402

BASE = "https://jobs.example.test"

FORM_BEHIND_APPLY = """
<html><body>
  <form>
    <input autocomplete="given-name"><input autocomplete="family-name"><input type="email">
    <input type="file" accept=".pdf">
  </form>
  <a href="/jobs/42/apply/start" class="apply-button">Apply</a>
</body></html>
"""


def _profile() -> IdentityProfile:
    return IdentityProfile(
        first_name="Ada",
        last_name="Lovelace",
        email="ada@example.com",
        sponsorship_required=False,
        resume=ResumeFile(name="ada.pdf", data=b"%PDF-1.4"),
    )


def _navigator(session: FakeSession, **options) -> Navigator:
    return Navigator(session, _profile(), notifier=EventChannel(), job_id="job-42", **options)


def _event_types(navigator: Navigator):
    return [event["type"] for event in navigator.notifier.events]


@pytest.mark.asyncio
async def test_checkbox_captcha_is_ticked_and_navigation_continues() -> None:
    session = FakeSession([(f"{BASE}/verify", pages.CHECKBOX_CAPTCHA), (f"{BASE}/next", pages.BLANK_PAGE)])
    navigator = _navigator(session)

    result = await navigator.intelligent_navigate()

    clicked, forced = session.clicks[0]
    assert clicked.purpose is FieldPurpose.CAPTCHA
    assert not forced
    assert result.reason is NavigationReason.UNKNOWN_PAGE
    assert [entry["action"] for entry in navigator.history_summary()] == ["captcha_checkbox", "none"]


@pytest.mark.asyncio
async def test_already_checked_captcha_is_left_alone() -> None:
    checked = pages.CHECKBOX_CAPTCHA.replace('id="captcha-checkbox"', 'id="captcha-checkbox" checked')
    session = FakeSession([(f"{BASE}/verify", checked)], advance_on_click=False)

    result = await _navigator(session, max_attempts=2).intelligent_navigate()

    assert session.clicks == []
    assert result.reason is NavigationReason.MAX_ATTEMPTS


@pytest.mark.asyncio
async def test_loop_ends_at_the_attempt_ceiling_without_repeating_clicks() -> None:
    session = FakeSession([(f"{BASE}/jobs/42", pages.INTERMEDIATE_PAGE)], advance_on_click=False)
    navigator = _navigator(session)

    result = await navigator.intelligent_navigate()

    assert result.reason is NavigationReason.MAX_ATTEMPTS
    assert not result.success
    assert result.final_classification.type is PageType.INTERMEDIATE
    assert len(session.clicks) == 1
    assert session.page_change_waits == 5
    assert len(navigator.history_summary()) == 5
    assert _event_types(navigator) == [NAVIGATION_STARTING, NAVIGATION_FAILED]
    assert navigator.notifier.events[0]["payload"] == {"jobId": "job-42", "url": f"{BASE}/jobs/42/apply"}
    assert navigator.notifier.events[1]["payload"]["reason"] == "max_attempts"


@pytest.mark.asyncio
async def test_acted_on_set_resets_when_location_changes() -> None:
    session = FakeSession(
        [(f"{BASE}/jobs/42", pages.INTERMEDIATE_PAGE), (f"{BASE}/jobs/43", pages.INTERMEDIATE_PAGE)]
    )

    result = await _navigator(session, max_attempts=4).intelligent_navigate()

    assert result.reason is NavigationReason.MAX_ATTEMPTS
    assert len(session.clicks) == 2


@pytest.mark.asyncio
async def test_full_application_is_filled_and_submitted() -> None:
    session = FakeSession(
        [
            (f"{BASE}/jobs/42", pages.INTERMEDIATE_PAGE),
            (f"{BASE}/jobs/42/apply", pages.APPLICATION_FORM),
            (f"{BASE}/jobs/42/apply", pages.SUCCESS_PAGE),
        ]
    )
    navigator = _navigator(session)

    result = await navigator.intelligent_navigate()

    assert result.success
    assert result.reason is NavigationReason.FORM_FOUND
    assert result.final_classification.type is PageType.FORM
    assert sorted(session.filled.values()) == ["Ada", "Lovelace", "ada@example.com"]
    assert [name for _, name, _ in session.attached] == ["ada.pdf"]
    assert [field.purpose for field, _ in session.clicks] == [FieldPurpose.APPLY, FieldPurpose.SUBMIT]
    assert _event_types(navigator) == [NAVIGATION_STARTING, NAVIGATION_COMPLETE]


@pytest.mark.asyncio
async def test_invalid_form_gets_one_forced_submit_then_needs_manual_input() -> None:
    session = FakeSession([(f"{BASE}/apply", pages.APPLICATION_FORM)], advance_on_click=False, valid=False)
    navigator = _navigator(session)

    result = await navigator.intelligent_navigate()

    assert not result.success
    assert result.reason is NavigationReason.MANUAL_INPUT_REQUIRED
    assert [(field.purpose, forced) for field, forced in session.clicks] == [(FieldPurpose.SUBMIT, True)]
    assert navigator.notifier.events[-1]["payload"]["reason"] == "manual_input_required"


@pytest.mark.asyncio
async def test_submit_without_effect_falls_back_to_forced_click() -> None:
    session = FakeSession([(f"{BASE}/apply", pages.APPLICATION_FORM)], advance_on_click=False, no_effect_on_submit=True)

    result = await _navigator(session).intelligent_navigate()

    assert result.reason is NavigationReason.MANUAL_INPUT_REQUIRED
    assert [forced for _, forced in session.clicks] == [False, True]


@pytest.mark.asyncio
async def test_forced_submit_that_lands_on_confirmation_succeeds() -> None:
    session = FakeSession(
        [(f"{BASE}/apply", pages.APPLICATION_FORM), (f"{BASE}/apply/thank-you", pages.BLANK_PAGE)],
        valid=False,
    )

    result = await _navigator(session).intelligent_navigate()

    assert result.success
    assert session.clicks[0][1] is True


@pytest.mark.asyncio
async def test_form_without_submit_button_needs_manual_input() -> None:
    session = FakeSession([(f"{BASE}/apply", pages.FORM_WITHOUT_SUBMIT)])

    result = await _navigator(session).intelligent_navigate()

    assert result.reason is NavigationReason.MANUAL_INPUT_REQUIRED
    assert session.clicks == []
    assert len(session.filled) == 3


@pytest.mark.asyncio
async def test_form_offering_apply_is_treated_as_intermediate_once() -> None:
    session = FakeSession([(f"{BASE}/jobs/42", FORM_BEHIND_APPLY)], advance_on_click=False)

    result = await _navigator(session).intelligent_navigate()

    assert [field.purpose for field, _ in session.clicks] == [FieldPurpose.APPLY]
    # Second pass fills the form and finds no submit control.
    assert result.reason is NavigationReason.MANUAL_INPUT_REQUIRED
    assert session.filled


@pytest.mark.asyncio
async def test_signup_without_guest_requires_an_account() -> None:
    session = FakeSession([(f"{BASE}/signup", pages.SIGNUP_PAGE)])
    navigator = _navigator(session)

    result = await navigator.intelligent_navigate()

    assert result.reason is NavigationReason.ACCOUNT_REQUIRED
    assert "create an account manually" in result.message
    assert session.clicks == []
    assert session.filled == {}
    assert navigator.notifier.events[-1]["payload"]["reason"] == "account_required"


@pytest.mark.asyncio
async def test_signup_guest_option_is_taken() -> None:
    session = FakeSession([(f"{BASE}/signup", pages.SIGNUP_WITH_GUEST), (f"{BASE}/done", pages.BLANK_PAGE)])

    result = await _navigator(session).intelligent_navigate()

    assert session.clicks[0][0].purpose is FieldPurpose.GUEST
    assert result.reason is NavigationReason.UNKNOWN_PAGE


@pytest.mark.asyncio
async def test_challenge_captcha_stops_the_run() -> None:
    session = FakeSession([(f"{BASE}/verify", pages.CHALLENGE_CAPTCHA)])

    result = await _navigator(session).intelligent_navigate()

    assert result.reason is NavigationReason.COMPLEX_CAPTCHA
    assert session.clicks == []


@pytest.mark.asyncio
async def test_options_dialog_prefers_autofill() -> None:
    session = FakeSession([(f"{BASE}/apply", pages.OPTIONS_DIALOG), (f"{BASE}/apply/autofill", pages.BLANK_PAGE)])

    await _navigator(session).intelligent_navigate()

    clicked = session.clicks[0][0]
    assert clicked.purpose is FieldPurpose.APPLY
    assert clicked.text == "Autofill with Resume"


@pytest.mark.asyncio
async def test_options_dialog_hidden_clicks_the_page_apply_button() -> None:
    html = pages.OPTIONS_DIALOG.replace('style="position: fixed"', 'style="position: fixed; display: none"').replace(
        "</body>", '<button id="open-options">Apply</button></body>'
    )
    session = FakeSession([(f"{BASE}/jobs/42", html)], advance_on_click=False)

    await _navigator(session, max_attempts=1).intelligent_navigate()

    clicked = session.clicks[0][0]
    assert clicked.text == "Apply"


@pytest.mark.asyncio
async def test_informational_dialog_is_closed() -> None:
    session = FakeSession([(f"{BASE}/jobs", pages.COOKIE_DIALOG), (f"{BASE}/jobs/1", pages.BLANK_PAGE)])

    await _navigator(session).intelligent_navigate()

    assert session.clicks[0][0].purpose is FieldPurpose.CLOSE


@pytest.mark.asyncio
async def test_dialog_without_close_button_is_dismissed_with_escape() -> None:
    session = FakeSession([(f"{BASE}/jobs", pages.PLAIN_DIALOG)], advance_on_click=False)
    navigator = _navigator(session, max_attempts=1)

    await navigator.intelligent_navigate()

    assert session.keys == ["Escape"]
    assert navigator.history_summary()[0]["action"] == "escape"


@pytest.mark.asyncio
async def test_unknown_page_ends_immediately() -> None:
    session = FakeSession([(f"{BASE}/about", pages.BLANK_PAGE)])

    result = await intelligent_navigate(session, _profile())

    assert result.reason is NavigationReason.UNKNOWN_PAGE
    assert "not be a supported ATS platform" in result.message
    assert session.page_change_waits == 0


@pytest.mark.asyncio
async def test_exhausted_click_failures_propagate() -> None:
    session = FakeSession(
        [(f"{BASE}/jobs/42", pages.INTERMEDIATE_PAGE)],
        click_error=ElementNotInteractableError("apply button is not rendered"),
    )

    with pytest.raises(ElementNotInteractableError):
        await _navigator(session).intelligent_navigate()


@pytest.mark.asyncio
async def test_user_activity_is_recorded_in_history() -> None:
    session = FakeSession([(f"{BASE}/about", pages.BLANK_PAGE)])
    session.user_input = True
    navigator = _navigator(session)

    await navigator.intelligent_navigate()

    assert navigator.history_summary()[0]["user_input"] is True


FIELDS_OUTSIDE_FORM = """
<html><body>
  <form role="search" style="display: none"><input type="search" name="q"></form>
  <input autocomplete="given-name">
  <input autocomplete="family-name">
  <input type="email">
  <input type="file" accept=".pdf">
  <button type="submit">Submit application</button>
</body></html>
"""


@pytest.mark.asyncio
async def test_unrelated_hidden_form_is_not_taken_as_submission() -> None:
    session = FakeSession([(f"{BASE}/apply", FIELDS_OUTSIDE_FORM)], advance_on_click=False)

    result = await _navigator(session).intelligent_navigate()

    assert not result.success
    assert result.reason is NavigationReason.MANUAL_INPUT_REQUIRED
    assert [forced for _, forced in session.clicks] == [False, True]


@pytest.mark.asyncio
async def test_options_dialog_stays_open_after_its_option_was_clicked() -> None:
    session = FakeSession([(f"{BASE}/apply", pages.OPTIONS_DIALOG)], advance_on_click=False)

    result = await _navigator(session, max_attempts=2).intelligent_navigate()

    assert result.reason is NavigationReason.MAX_ATTEMPTS
    assert [field.text for field, _ in session.clicks] == ["Autofill with Resume"]
    assert session.keys == []


@pytest.mark.asyncio
async def test_hidden_close_button_falls_back_to_escape() -> None:
    html = pages.COOKIE_DIALOG.replace('<button aria-label="Close">', '<button aria-label="Close" style="display: none">')
    session = FakeSession([(f"{BASE}/jobs", html)], advance_on_click=False, refuse_hidden=True)

    await _navigator(session, max_attempts=1).intelligent_navigate()

    assert session.clicks == []
    assert session.keys == ["Escape"]


@pytest.mark.asyncio
async def test_intermediate_page_with_only_hidden_apply_keeps_going() -> None:
    html = pages.INTERMEDIATE_PAGE.replace(
        '<a href="/jobs/42/apply" class="apply-button">Apply now</a>',
        '<nav style="display: none"><a href="/jobs/42/apply" class="apply-button">Apply now</a></nav>',
    )
    session = FakeSession([(f"{BASE}/jobs/42", html)], advance_on_click=False, refuse_hidden=True)

    result = await _navigator(session, max_attempts=2).intelligent_navigate()

    assert result.reason is NavigationReason.MAX_ATTEMPTS
    assert session.clicks == []


@pytest.mark.asyncio
async def test_form_with_only_hidden_submit_needs_manual_input() -> None:
    html = pages.APPLICATION_FORM.replace('<button type="submit">', '<button type="submit" style="display: none">')
    session = FakeSession([(f"{BASE}/apply", html)], advance_on_click=False, refuse_hidden=True)

    result = await _navigator(session).intelligent_navigate()

    assert result.reason is NavigationReason.MANUAL_INPUT_REQUIRED
    assert session.clicks == []


@pytest.mark.asyncio
async def test_form_fallback_clicks_the_apply_control_in_view() -> None:
    html = FORM_BEHIND_APPLY.replace(
        "<form>", '<a href="/jobs/42/apply/sticky" class="apply-button" data-ats-inview="0">Apply</a>\n  <form>'
    )
    session = FakeSession([(f"{BASE}/jobs/42", html)], advance_on_click=False)

    await _navigator(session, max_attempts=1).intelligent_navigate()

    assert [field.href for field, _ in session.clicks] == ["/jobs/42/apply/start"]


def test_navigation_state_ignores_fragment_changes() -> None:
    state = NavigationState()
    state.enter(f"{BASE}/apply")
    state.acted_on.add("id:x")

    state.enter(f"{BASE}/apply#step-2")
    assert state.acted_on == {"id:x"}

    state.enter(f"{BASE}/apply/review")
    assert state.acted_on == set()
    assert state.visited_urls == {f"{BASE}/apply", f"{BASE}/apply/review"}


def test_element_identity_includes_structure() -> None:
    doc = DocumentSnapshot.from_html("<div><button>Next</button></div><div><button>Next</button></div>")
    first, second = doc.select("button")

    assert element_identity(doc, first) != element_identity(doc, second)
    assert element_identity(doc, first).startswith("button:Next@")
