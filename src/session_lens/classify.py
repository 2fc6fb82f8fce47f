"""Plan/implementation session pairing.

Claude Code's plan mode ends by starting a fresh session whose first prompt
is "Implement the following plan: ...". Both sessions carry the same slug,
which is the only link between them.
"""

from session_lens.markup import is_plan_implementation, is_status_text
from session_lens.models import SessionSummary, Turn, UserTurn


def classify_session_types(sessions: list[SessionSummary]) -> None:
    """Tag sessions in place as "implementation" or "plan".

    A session whose first message starts with the plan prefix is an
    implementation session. Any other session sharing a non-empty slug with
    an implementation session is its plan session.
    """
    impl_slugs: set[str] = set()
    for session in sessions:
        if is_plan_implementation(session.first_message):
            session.session_type = "implementation"
            if session.slug:
                impl_slugs.add(session.slug)

    for session in sessions:
        if session.session_type is None and session.slug and session.slug in impl_slugs:
            session.session_type = "plan"


def find_plan_session_id(
    turns: list[Turn],
    slug: str | None,
    sessions: list[SessionSummary],
    current_session_id: str,
) -> str | None:
    """Find the plan session an implementation session was started from.

    Args:
        turns: Turns of the current session
        slug: Slug of the current session
        sessions: All sessions of the project
        current_session_id: Id of the current session

    Returns:
        Session id of the plan session, or None
    """
    first_user_turn = next(
        (turn for turn in turns if isinstance(turn, UserTurn) and not is_status_text(turn.text)),
        None,
    )
    if first_user_turn is None or not is_plan_implementation(first_user_turn.text):
        return None
    if not slug:
        return None
    for session in sessions:
        if session.slug == slug and session.session_id != current_session_id:
            return session.session_id
    return None


def find_impl_session_id(
    slug: str | None,
    sessions: list[SessionSummary],
    current_session_id: str,
) -> str | None:
    """Find the implementation session started from a plan session."""
    if not slug:
        return None
    for session in sessions:
        if (
            session.slug == slug
            and session.session_id != current_session_id
            and is_plan_implementation(session.first_message)
        ):
            return session.session_id
    return None
