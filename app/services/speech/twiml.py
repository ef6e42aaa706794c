"""TwiML rendering for turn results."""
from typing import List

from app.core.config import settings
from app.services.agent.constants import GATHER_TIMEOUT_MESSAGE
from app.services.call_session.models import SpokenSegment, TurnAction, TurnResult

FALLBACK_VOICE = "Polly.Joanna-Neural"
VOICEMAIL_MAX_SECONDS = 120
VOICEMAIL_GOODBYE = "Thank you for your message. Goodbye."


def escape_xml(text: str) -> str:
    """Escape XML special characters."""
    return (
        text.replace("&", "&amp;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
        .replace('"', "&quot;")
        .replace("'", "&apos;")
    )


class TwiMLBuilder:
    """Builds Twilio voice responses."""

    def __init__(self, base_url: str):
        self.base_url = base_url.rstrip("/")

    def gather_url(self, call_sid: str) -> str:
        return f"{self.base_url}/webhooks/voice/gather?CallSid={call_sid}"

    def audio_url(self, audio_id: str) -> str:
        return f"{self.base_url}/audio/{audio_id}.mp3"

    def say(self, text: str) -> str:
        return f'<Say voice="{FALLBACK_VOICE}">{escape_xml(text)}</Say>'

    def _segment(self, segment: SpokenSegment) -> str:
        """Play rendered audio, or speak with the baseline voice."""
        if segment.audio.is_fallback:
            return self.say(segment.text)
        return f"<Play>{escape_xml(self.audio_url(segment.audio.audio_id))}</Play>"

    def _segments(self, segments: List[SpokenSegment], indent: str) -> str:
        return "\n".join(f"{indent}{self._segment(segment)}" for segment in segments)

    def speak_and_gather(self, segments: List[SpokenSegment], call_sid: str) -> str:
        """Speak, then listen for the caller's next utterance."""
        action_url = escape_xml(self.gather_url(call_sid))
        return f"""<?xml version="1.0" encoding="UTF-8"?>
<Response>
    <Gather action="{action_url}" method="POST" input="speech" speechTimeout="auto" language="en-ZA">
{self._segments(segments, "        ")}
    </Gather>
    {self.say(GATHER_TIMEOUT_MESSAGE)}
    <Redirect method="POST">{action_url}</Redirect>
</Response>"""

    def transfer(self, segments: List[SpokenSegment], number: str) -> str:
        """Speak, then dial a human agent."""
        return f"""<?xml version="1.0" encoding="UTF-8"?>
<Response>
{self._segments(segments, "    ")}
    <Dial callerId="{escape_xml(settings.twilio_phone_number)}">{escape_xml(number)}</Dial>
</Response>"""

    def voicemail(self, segments: List[SpokenSegment]) -> str:
        """Speak, record a message, then hang up."""
        return f"""<?xml version="1.0" encoding="UTF-8"?>
<Response>
{self._segments(segments, "    ")}
    <Record maxLength="{VOICEMAIL_MAX_SECONDS}" transcribe="true" playBeep="true"/>
    {self.say(VOICEMAIL_GOODBYE)}
    <Hangup/>
</Response>"""

    def hangup(self, segments: List[SpokenSegment]) -> str:
        """Speak, then end the call."""
        return f"""<?xml version="1.0" encoding="UTF-8"?>
<Response>
{self._segments(segments, "    ")}
    <Hangup/>
</Response>"""

    def render(self, result: TurnResult, call_sid: str) -> str:
        """TwiML for a turn result."""
        if result.action is TurnAction.TRANSFER:
            if result.transfer_number:
                return self.transfer(result.segments, result.transfer_number)
            return self.voicemail(result.segments)
        if result.action is TurnAction.HANGUP:
            return self.hangup(result.segments)
        return self.speak_and_gather(result.segments, call_sid)

    def error_response(self, text: str, call_sid: str) -> str:
        """Spoken apology with the baseline voice, then keep listening."""
        action_url = escape_xml(self.gather_url(call_sid))
        return f"""<?xml version="1.0" encoding="UTF-8"?>
<Response>
    <Gather action="{action_url}" method="POST" input="speech" speechTimeout="auto" language="en-ZA">
        {self.say(text)}
    </Gather>
    <Redirect method="POST">{action_url}</Redirect>
</Response>"""
