"""Phrases, lexicons and patterns used by the call flow."""
import re

from app.services.agent.stages import Department

# Caller phrases that explicitly ask for a person
HUMAN_REQUEST_PHRASES = [
    "human",
    "person",
    "real person",
    "agent",
    "live agent",
    "real agent",
    "operator",
    "representative",
    "manager",
    "supervisor",
    "speak to someone",
    "talk to someone",
    "transfer",
    "transfer me",
]

# Caller words that route straight to a department from the receptionist
DEPARTMENT_KEYWORDS = {
    Department.SALES: ["sales"],
    Department.SHIPPING: ["shipping", "track", "tracking", "delivery"],
    Department.SUPPORT: ["support", "technical"],
    Department.ACCOUNTS: ["accounts", "billing", "invoice"],
}

# Caller words that end the call after the agent replies
GOODBYE_WORDS = ["goodbye", "bye"]

_DEPARTMENT_NAMES = "|".join(department.value for department in Department if department.is_specialist)

# Structured hand-off tag the receptionist prompt asks for, e.g. [[handoff:shipping]]
HANDOFF_TAG_PATTERN = re.compile(
    rf"\[\[\s*handoff\s*:\s*({_DEPARTMENT_NAMES})\s*\]\]", re.IGNORECASE
)
# Any [[...]] tag, stripped before text is spoken
SIGNAL_TAG_PATTERN = re.compile(r"\[\[[^\]]*\]\]")
# Free-text hand-off phrase, used when the tag is missing
HANDOFF_PHRASE_PATTERN = re.compile(
    rf"connect you to our ({_DEPARTMENT_NAMES}) team", re.IGNORECASE
)

APOLOGY_MESSAGE = "Sorry, I did not catch that. Could you please repeat?"
NO_INPUT_MESSAGE = "Sorry, I didn't hear anything. How can I help you?"
GATHER_TIMEOUT_MESSAGE = "I didn't catch that. Please try again."
SESSION_GONE_MESSAGE = "Sorry, this call has already ended. Goodbye."

NO_PRODUCTS_MESSAGE = "No products found matching that search"
