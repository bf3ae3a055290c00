"""Tests for assembling streamed chunks into one turn."""

from types import SimpleNamespace

import pytest

from fakes import FakeStream, make_chunk, tool_delta
from yagi.stream import assemble_stream
from yagi.types import ChatOptions


class TestContent:
    """Text and reasoning deltas."""

    @pytest.mark.asyncio
    async def test_text_is_concatenated_and_streamed(self):
        seen = []
        options = ChatOptions(on_content=seen.append)
        stream = FakeStream(
            [make_chunk("Hel"), make_chunk("lo"), make_chunk(" world", finish_reason="stop")]
        )

        turn = await assemble_stream(stream, options)

        assert turn.content == "Hello world"
        assert turn.tool_calls == []
        assert turn.finish_reason == "stop"
        assert seen == ["Hel", "lo", " world"]

    @pytest.mark.asyncio
    async def test_reasoning_deltas_are_reported_but_not_in_content(self):
        reasoning = []
        options = ChatOptions(on_reasoning=reasoning.append)
        stream = FakeStream(
            [
                make_chunk(reasoning_content="thinking..."),
                make_chunk("answer", finish_reason="stop"),
            ]
        )

        turn = await assemble_stream(stream, options)

        assert reasoning == ["thinking..."]
        assert turn.content == "answer"

    @pytest.mark.asyncio
    async def test_chunks_without_choices_are_skipped(self):
        empty = make_chunk("x")
        empty.choices = []
        stream = FakeStream([empty, make_chunk("ok", finish_reason="stop")])

        turn = await assemble_stream(stream)

        assert turn.content == "ok"


class TestToolCallAssembly:
    """Tool-call fragments merged by index."""

    @pytest.mark.asyncio
    async def test_tool_call_fragments_are_merged_by_index(self):
        stream = FakeStream(
            [
                make_chunk(tool_calls=[tool_delta(0, id="call_a", name="read_", arguments='{"pa')]),
                make_chunk(tool_calls=[tool_delta(1, id="call_b", name="glob", arguments="{}")]),
                make_chunk(tool_calls=[tool_delta(0, name="file", arguments='th": "x"}')]),
                make_chunk(finish_reason="tool_calls"),
            ]
        )

        turn = await assemble_stream(stream)

        assert [(tc.id, tc.name, tc.arguments) for tc in turn.tool_calls] == [
            ("call_a", "read_file", '{"path": "x"}'),
            ("call_b", "glob", "{}"),
        ]

    @pytest.mark.asyncio
    async def test_tool_calls_sorted_by_index_not_arrival(self):
        stream = FakeStream(
            [
                make_chunk(tool_calls=[tool_delta(2, id="c2", name="b", arguments="{}")]),
                make_chunk(tool_calls=[tool_delta(0, id="c0", name="a", arguments="{}")]),
                make_chunk(finish_reason="tool_calls"),
            ]
        )

        turn = await assemble_stream(stream)

        assert [tc.id for tc in turn.tool_calls] == ["c0", "c2"]

    @pytest.mark.asyncio
    async def test_later_non_empty_id_replaces_earlier(self):
        stream = FakeStream(
            [
                make_chunk(tool_calls=[tool_delta(0, id="first", name="glob")]),
                make_chunk(tool_calls=[tool_delta(0, id="second", arguments="{}")]),
                make_chunk(finish_reason="tool_calls"),
            ]
        )

        turn = await assemble_stream(stream)

        assert turn.tool_calls[0].id == "second"
        assert turn.tool_calls[0].arguments == "{}"

    @pytest.mark.asyncio
    async def test_tool_calls_dropped_unless_finish_reason_is_tool_calls(self):
        """A turn cut off for length keeps its text but none of its calls."""
        stream = FakeStream(
            [
                make_chunk("partial answer"),
                make_chunk(tool_calls=[tool_delta(0, id="c0", name="glob", arguments="{}")]),
                make_chunk(finish_reason="length"),
            ]
        )

        turn = await assemble_stream(stream)

        assert turn.content == "partial answer"
        assert turn.tool_calls == []
        assert turn.finish_reason == "length"

    @pytest.mark.asyncio
    async def test_missing_index_defaults_to_zero(self):
        fragment = SimpleNamespace(
            index=None, id="c0", function=SimpleNamespace(name="glob", arguments="{}")
        )
        chunk = SimpleNamespace(
            choices=[
                SimpleNamespace(
                    finish_reason="tool_calls",
                    delta=SimpleNamespace(content=None, tool_calls=[fragment]),
                )
            ]
        )

        turn = await assemble_stream(FakeStream([chunk]))

        assert [(tc.id, tc.name) for tc in turn.tool_calls] == [("c0", "glob")]


class TestFailures:
    @pytest.mark.asyncio
    async def test_observer_errors_do_not_abort_assembly(self):
        def broken(_text):
            raise RuntimeError("display failed")

        stream = FakeStream([make_chunk("a"), make_chunk("b", finish_reason="stop")])

        turn = await assemble_stream(stream, ChatOptions(on_content=broken))

        assert turn.content == "ab"

    @pytest.mark.asyncio
    async def test_stream_error_propagates(self):
        stream = FakeStream([make_chunk("a")], error=ConnectionError("dropped"))

        with pytest.raises(ConnectionError):
            await assemble_stream(stream)
