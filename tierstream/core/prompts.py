"""Prompt construction per use case."""
from typing import Callable, Dict, List

from tierstream.core.validation import ConsultationRequest, IdeaRequest, UseCase

CONSULTATION_SYSTEM_PROMPT = """\
You are provided with notes written by a doctor from a patient's visit.
Your job is to summarize the visit for the doctor and provide an email.
Reply with exactly three sections with the headings:
### Summary of visit for the doctor's records
### Next steps for the doctor
### Draft of email to patient in patient-friendly language
"""

IDEA_SYSTEM_PROMPT = """\
You are a creative and pragmatic business strategist.
Reply with a single new business idea on the topic you are given.
Format it in markdown with headings, sub-headings and bullet points.
"""


def _consultation_messages(record: ConsultationRequest) -> List[Dict[str, str]]:
    user_prompt = (
        "Create the summary, next steps and draft email for:\n"
        f"Patient Name: {record.patient_name}\n"
        f"Date of Visit: {record.date_of_visit}\n"
        "Notes:\n"
        f"{record.notes}"
    )
    return [
        {"role": "system", "content": CONSULTATION_SYSTEM_PROMPT},
        {"role": "user", "content": user_prompt},
    ]


def _idea_messages(record: IdeaRequest) -> List[Dict[str, str]]:
    return [
        {"role": "system", "content": IDEA_SYSTEM_PROMPT},
        {"role": "user", "content": f"Come up with a new business idea about: {record.topic}"},
    ]


_BUILDERS: Dict[UseCase, Callable] = {
    UseCase.IDEA: _idea_messages,
    UseCase.CONSULTATION: _consultation_messages,
}


def build_messages(use_case: UseCase, record) -> List[Dict[str, str]]:
    """Build the ordered [system, user] message list for a validated record.

    Pure: the same record always yields the same messages.
    """
    return _BUILDERS[use_case](record)
