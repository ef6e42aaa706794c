"""Unit tests for the speech synthesis cache."""
import pytest

from app.services.agent.stages import Department
from app.services.speech.cache import AudioSource, SpeechSynthesisCache


class TestSpeechSynthesisCache:
    """Test cache tiers, fallback and eviction."""

    def test_voice_for_falls_back_to_receptionist(self, speech_cache):
        assert speech_cache.voice_for(Department.SHIPPING) == "voice-shipping"
        assert speech_cache.voice_for(Department.SUPPORT) == "voice-reception"

    @pytest.mark.asyncio
    async def test_common_phrase_skips_synthesis(self, speech_cache, synthesizer):
        rendered = await speech_cache.warm([("Welcome.", "voice-reception")])
        assert rendered == 1
        synthesizer.calls.clear()

        handle = await speech_cache.render("Welcome.", "voice-reception")

        assert handle.source == AudioSource.COMMON
        assert handle.audio_id is not None
        assert synthesizer.calls == []
        assert speech_cache.get_audio(handle.audio_id) == b"mp3:voice-reception:Welcome."

    @pytest.mark.asyncio
    async def test_warm_skips_failures(self, speech_cache, synthesizer):
        synthesizer.error = RuntimeError("quota exceeded")

        rendered = await speech_cache.warm([("Welcome.", "voice-reception")])

        assert rendered == 0
        assert not speech_cache.is_common("Welcome.", "voice-reception")

    @pytest.mark.asyncio
    async def test_on_demand_render_is_reused(self, speech_cache, synthesizer):
        first = await speech_cache.render("Your order has shipped.", "voice-shipping")
        second = await speech_cache.render("Your order has shipped.", "voice-shipping")

        assert first.source == AudioSource.SYNTHESIZED
        assert second.source == AudioSource.CACHED
        assert second.audio_id == first.audio_id
        assert len(synthesizer.calls) == 1

    @pytest.mark.asyncio
    async def test_same_text_different_voice_is_separate(self, speech_cache, synthesizer):
        first = await speech_cache.render("Hello.", "voice-sales")
        second = await speech_cache.render("Hello.", "voice-shipping")

        assert first.audio_id != second.audio_id
        assert len(synthesizer.calls) == 2

    @pytest.mark.asyncio
    async def test_synthesis_error_uses_fallback(self, speech_cache, synthesizer):
        synthesizer.error = RuntimeError("provider down")

        handle = await speech_cache.render("Please hold.", "voice-sales")

        assert handle.source == AudioSource.FALLBACK
        assert handle.is_fallback
        assert handle.text == "Please hold."

    @pytest.mark.asyncio
    async def test_synthesis_timeout_uses_fallback(self, synthesizer, clock):
        cache = SpeechSynthesisCache(
            synthesizer, timeout=0.05, retention_seconds=3600, voices={}, clock=clock
        )
        synthesizer.delay = 1

        handle = await cache.render("Please hold.", "voice-sales")

        assert handle.is_fallback
        # Failed renders are not cached
        synthesizer.delay = 0
        retry = await cache.render("Please hold.", "voice-sales")
        assert retry.source == AudioSource.SYNTHESIZED

    @pytest.mark.asyncio
    async def test_renders_evicted_after_retention(self, speech_cache, synthesizer, clock):
        handle = await speech_cache.render("Your order has shipped.", "voice-shipping")
        clock.advance(3599)
        assert speech_cache.get_audio(handle.audio_id) is not None

        clock.advance(2)

        assert speech_cache.get_audio(handle.audio_id) is None
        again = await speech_cache.render("Your order has shipped.", "voice-shipping")
        assert again.source == AudioSource.SYNTHESIZED
        assert len(synthesizer.calls) == 2

    @pytest.mark.asyncio
    async def test_common_phrases_never_evicted(self, speech_cache, clock):
        await speech_cache.warm([("Welcome.", "voice-reception")])
        handle = await speech_cache.render("Welcome.", "voice-reception")

        clock.advance(10 * 3600)

        assert speech_cache.evict_expired() == 0
        assert speech_cache.get_audio(handle.audio_id) is not None

    def test_unknown_audio(self, speech_cache):
        assert speech_cache.get_audio("missing") is None
