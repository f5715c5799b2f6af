"""Tests for the chunked translation pipeline."""

import asyncio
from types import SimpleNamespace

import pytest

from conftest import RecordingBackendClient
from onemin_relay.core.exceptions import BackendCallError, TranslationPipelineError
from onemin_relay.logging import TranslationRecorder
from onemin_relay.models import ResolvedModel, WebSearchConfig
from onemin_relay.pipeline import ChunkedTranslator, approximate_usage, orchestrator
from onemin_relay.types import ChatRequest

SENTENCE = "The quick brown fox jumps over the lazy dog. "


def _request(text: str, **kwargs) -> ChatRequest:
    return ChatRequest(messages=[{"role": "user", "content": text}], **kwargs)


def _translator(client, recorder=None, delay_s=0.0) -> ChunkedTranslator:
    return ChunkedTranslator(
        client,
        recorder if recorder is not None else TranslationRecorder(),
        inter_segment_delay_s=delay_s,
    )


def _started(recorder: TranslationRecorder, request_id: str, text: str) -> None:
    recorder.start(request_id, len(text), "gpt-4o-mini")


class TestChunkedTranslator:
    """Tests for sequential segment processing."""

    @pytest.mark.asyncio
    async def test_plain_outputs_joined_with_space(self):
        text = (SENTENCE * 112)[:5000]
        client = RecordingBackendClient(["uno", "dos", "tres"])
        recorder = TranslationRecorder()
        _started(recorder, "req-1", text)

        body = await _translator(client, recorder).translate_chunked(
            _request(text), ResolvedModel("gpt-4o-mini"), "req-1"
        )

        assert body["object"] == "chat.completion"
        assert body["model"] == "gpt-4o-mini"
        assert body["choices"][0]["message"] == {"role": "assistant", "content": "uno dos tres"}
        assert body["choices"][0]["finish_reason"] == "stop"
        assert body["usage"] == approximate_usage(text, "uno dos tres")

        metrics = recorder.get("req-1")
        assert metrics.status == "completed"
        assert metrics.segment_count == 3

    @pytest.mark.asyncio
    async def test_segments_sent_in_order_as_single_user_messages(self):
        text = "a" * 4500
        client = RecordingBackendClient(["x", "y", "z"])

        await _translator(client).translate_chunked(
            _request(text, temperature=0.3, max_tokens=256),
            ResolvedModel("gpt-4o"),
            "req-2",
        )

        assert client.prompts == ["a" * 2000, "a" * 2000, "a" * 500]
        for payload in client.payloads:
            assert payload["type"] == "CHAT_WITH_AI"
            assert payload["model"] == "gpt-4o"
            assert payload["promptObject"]["temperature"] == 0.3
            assert payload["promptObject"]["maxTokens"] == 256

    @pytest.mark.asyncio
    async def test_structured_outputs_joined_with_paragraph_break(self):
        blocks = [
            f"{i}\n00:00:0{i},000 --> 00:00:0{i},500\n" + "x" * 560 for i in range(1, 5)
        ]
        text = "\n\n".join(blocks)
        client = RecordingBackendClient(["first", "second"])

        body = await _translator(client).translate_chunked(
            _request(text), ResolvedModel("gpt-4o-mini"), "req-3"
        )

        assert body["choices"][0]["message"]["content"] == "first\n\nsecond"
        assert client.prompts == [
            f"{blocks[0]}\n\n{blocks[1]}",
            f"{blocks[2]}\n\n{blocks[3]}",
        ]

    @pytest.mark.asyncio
    async def test_web_search_settings_reach_every_segment(self):
        client = RecordingBackendClient(["x", "y", "z"])
        model = ResolvedModel("gpt-4o", WebSearchConfig(True, 3, 200))

        await _translator(client).translate_chunked(_request("a" * 4500), model, "req-4")

        for payload in client.payloads:
            assert payload["promptObject"]["webSearch"] is True
            assert payload["promptObject"]["numOfSite"] == 3
            assert payload["promptObject"]["maxWord"] == 200

    @pytest.mark.asyncio
    async def test_failing_segment_aborts_run(self):
        """The third of five segments fails: no result, failure recorded."""
        text = "a" * 9000
        client = RecordingBackendClient(
            ["r0", "r1", BackendCallError("backend returned status 502", status_code=502)]
        )
        recorder = TranslationRecorder()
        _started(recorder, "req-5", text)

        with pytest.raises(TranslationPipelineError) as exc_info:
            await _translator(client, recorder).translate_chunked(
                _request(text), ResolvedModel("gpt-4o-mini"), "req-5"
            )

        assert exc_info.value.segment_index == 2
        assert "Segment 3 failed" in exc_info.value.message
        assert isinstance(exc_info.value.__cause__, BackendCallError)
        # Later segments are never attempted.
        assert len(client.payloads) == 3

        metrics = recorder.get("req-5")
        assert metrics.status == "failed"
        assert "Segment 3 failed" in metrics.error

    @pytest.mark.asyncio
    async def test_unexpected_error_is_wrapped(self):
        client = RecordingBackendClient(["r0", ValueError("bad body")])
        recorder = TranslationRecorder()
        _started(recorder, "req-6", "a" * 4500)

        with pytest.raises(TranslationPipelineError) as exc_info:
            await _translator(client, recorder).translate_chunked(
                _request("a" * 4500), ResolvedModel("gpt-4o-mini"), "req-6"
            )

        assert exc_info.value.segment_index == 1
        assert isinstance(exc_info.value.__cause__, ValueError)
        assert recorder.get("req-6").status == "failed"

    @pytest.mark.asyncio
    async def test_delay_between_segments_but_not_after_last(self, monkeypatch):
        sleeps = []

        async def fake_sleep(delay):
            sleeps.append(delay)

        monkeypatch.setattr(
            orchestrator,
            "asyncio",
            SimpleNamespace(sleep=fake_sleep, CancelledError=asyncio.CancelledError),
        )
        client = RecordingBackendClient(["x", "y", "z"])

        await _translator(client, delay_s=0.1).translate_chunked(
            _request("a" * 4500), ResolvedModel("gpt-4o-mini"), "req-7"
        )

        assert sleeps == [0.1, 0.1]

    @pytest.mark.asyncio
    async def test_raising_listener_leaves_run_completed(self):
        client = RecordingBackendClient(["x", "y", "z"])
        recorder = TranslationRecorder()

        def broken(event):
            raise RuntimeError("sink down")

        recorder.add_listener(broken)
        _started(recorder, "req-8", "a" * 4500)

        body = await _translator(client, recorder).translate_chunked(
            _request("a" * 4500), ResolvedModel("gpt-4o-mini"), "req-8"
        )

        assert body["choices"][0]["message"]["content"] == "x y z"
        assert recorder.get("req-8").status == "completed"


class TestFromConfig:
    def test_reads_delay_and_sizes(self):
        translator = ChunkedTranslator.from_config(
            RecordingBackendClient([]),
            TranslationRecorder(),
            {"inter_segment_delay_ms": 250, "max_segment_size": 1000, "overlap_size": 50},
        )
        assert translator.inter_segment_delay_s == 0.25
        assert translator.segmentation.max_segment_size == 1000
        assert translator.segmentation.overlap_size == 50
        assert translator.segmentation.structured_max_segment_size == 1500

    def test_defaults(self):
        translator = ChunkedTranslator.from_config(
            RecordingBackendClient([]), TranslationRecorder(), {}
        )
        assert translator.inter_segment_delay_s == 0.1
        assert translator.segmentation.max_segment_size == 2000


class TestApproximateUsage:
    def test_four_chars_per_token(self):
        assert approximate_usage("a" * 400, "b" * 100) == {
            "prompt_tokens": 100,
            "completion_tokens": 25,
            "total_tokens": 125,
        }
