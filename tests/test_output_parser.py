import asyncio
import logging

import pytest

from src.config import ParserConfig
from src.output_parser import OutputParser, create_parser
from src.parsing.events import EventKind, ToolCallPhase
from src.parsing.models import ParserState


def chunk_contents(recorder, partial=None):
    return [
        c.content for c in recorder.of(EventKind.ASSISTANT_CHUNK)
        if partial is None or c.partial is partial
    ]


class TestScenarios:
    def test_plain_response_ended_by_prompt(self, parser, recorder, feed):
        feed("hello\nworld\n$ ")
        assert recorder.kinds() == [
            EventKind.MESSAGE_START,
            EventKind.ASSISTANT_CHUNK,
            EventKind.ASSISTANT_CHUNK,
            EventKind.MESSAGE_END,
        ]
        assert chunk_contents(recorder) == ["hello", "world"]
        assert recorder.of(EventKind.MESSAGE_END)[0].content == "hello\nworld"
        assert parser.state is ParserState.IDLE

    def test_fenced_code_block(self, parser, recorder, feed):
        feed("Here it is:\n```js\nconst x = 1;\n```\n")
        block = recorder.of(EventKind.CODE_BLOCK)[0]
        assert (block.language, block.code) == ("js", "const x = 1;")
        assert parser.state is ParserState.ASSISTANT_RESPONSE
        assert parser.get_state().stats.code_blocks_detected == 1

    def test_tool_call_with_output(self, parser, recorder, feed):
        feed("⏺ Read (file.txt)\nline one\nline two\n⏺ Write(out.txt)\n")
        calls = recorder.of(EventKind.TOOL_CALL)
        assert [(c.phase, c.name, c.details) for c in calls] == [
            (ToolCallPhase.START, "Read", "file.txt"),
            (ToolCallPhase.END, "Read", "file.txt"),
            (ToolCallPhase.START, "Write", "out.txt"),
        ]
        assert calls[1].output == "line one\nline two"
        assert calls[1].duration >= 0

    def test_ansi_is_stripped_before_classification(self, parser, recorder, feed):
        feed("\x1b[31mred\x1b[0m text\n")
        assert chunk_contents(recorder) == ["red text"]
        assert recorder.of(EventKind.ASSISTANT_CHUNK)[0].raw == "\x1b[31mred\x1b[0m text"

    def test_reset_mid_code_block(self, parser, recorder, feed):
        feed("```py\nx = 1\n")
        assert parser.state is ParserState.CODE_BLOCK
        parser.reset()
        snap = parser.get_state()
        assert snap.state is ParserState.IDLE
        assert snap.previous_state is None
        assert snap.current_message_id is None
        assert snap.content_buffer_length == 0
        assert snap.is_in_code_block is False
        assert snap.is_in_tool_call is False
        assert snap.current_tool_call is None
        assert snap.stats.bytes_processed == len("```py\nx = 1\n")
        assert recorder.of(EventKind.CODE_BLOCK) == []
        assert recorder.kinds()[-1] is EventKind.RESET

    def test_no_complete_chunk_without_terminator(self, parser, recorder, feed):
        feed("hello\nwor")
        assert chunk_contents(recorder, partial=False) == ["hello"]
        assert chunk_contents(recorder, partial=True) == ["wor"]
        feed("ld\n")
        assert chunk_contents(recorder, partial=False) == ["hello", "world"]

    def test_unterminated_first_line_waits(self, parser, recorder, feed):
        feed("partial text")
        assert recorder.events == []
        assert parser.state is ParserState.IDLE


class TestChunking:
    def test_lines_split_across_writes(self, parser, recorder):
        for piece in ["hel", "lo\nwo", "rld\n", "$", " "]:
            parser.write(piece)
        parser.flush()
        assert chunk_contents(recorder) == ["hello", "world"]
        assert recorder.of(EventKind.MESSAGE_END)[0].content == "hello\nworld"

    def test_bytes_split_mid_character(self, parser, recorder):
        data = "⏺ ok\n".encode("utf-8")
        parser.write(data[:2])
        parser.flush()
        parser.write(data[2:])
        parser.flush()
        assert chunk_contents(recorder) == ["ok"]

    def test_escape_split_across_writes(self, parser, recorder):
        parser.write(b"\x1b[3")
        parser.write(b"1mred\x1b[0m\n")
        parser.flush()
        assert chunk_contents(recorder) == ["red"]

    def test_byte_count(self, parser):
        parser.write("⏺")
        parser.write(b"ab")
        assert parser.get_state().stats.bytes_processed == 5

    def test_final_flush_processes_tail_as_line(self, parser, recorder):
        parser.write("hello\nbye")
        parser.flush(final=True)
        assert chunk_contents(recorder, partial=False) == ["hello", "bye"]

    def test_oversized_escape_counts_survive_flush(self, parser, recorder, feed):
        feed("before\n")
        feed(
            "\x1b[" + "9" * 5000 + "Chi\n"
            "\x1b[99999999999999999999Cthere\n"
            "\x1b[" + "1" * 5000 + "mok\n"
            "after\n"
        )
        assert [c.strip() for c in chunk_contents(recorder)] == ["before", "hi", "there", "ok", "after"]

    def test_claude_line_endings(self, parser, recorder, feed):
        feed("one\r\r\ntwo\r\r\n")
        assert chunk_contents(recorder) == ["one", "two"]


class TestOptions:
    def test_strip_disabled(self, recorder):
        parser = OutputParser(ParserConfig(strip_ansi=False))
        parser.subscribe(recorder)
        parser.write("\x1b[1mbold\x1b[0m\n")
        parser.flush()
        assert chunk_contents(recorder) == ["\x1b[1mbold\x1b[0m"]

    def test_code_blocks_disabled(self, recorder):
        parser = OutputParser(ParserConfig(detect_code_blocks=False))
        parser.subscribe(recorder)
        parser.write("```js\nx\n```\n")
        parser.flush()
        assert recorder.of(EventKind.CODE_BLOCK) == []

    def test_tool_calls_disabled(self, recorder):
        parser = OutputParser(ParserConfig(detect_tool_calls=False))
        parser.subscribe(recorder)
        parser.write("⏺ Read(file.txt)\n")
        parser.flush()
        assert recorder.of(EventKind.TOOL_CALL) == []

    def test_create_parser_overrides(self):
        parser = create_parser(pause_threshold_ms=1000, detect_tool_calls=False)
        assert parser.config.pause_threshold_ms == 1000
        assert parser.config.detect_tool_calls is False
        assert parser.config.buffer_flush_interval_ms == 100

    def test_create_parser_rejects_unknown_option(self):
        with pytest.raises(TypeError):
            create_parser(not_an_option=True)


class TestSubscriptions:
    def test_on_filters_by_kind(self, parser, feed):
        ends = []
        parser.on(EventKind.MESSAGE_END, ends.append)
        feed("hi\n$ ")
        assert [e.content for e in ends] == ["hi"]

    def test_unsubscribe(self, parser, feed):
        seen = []
        unsubscribe = parser.subscribe(seen.append)
        unsubscribe()
        feed("hi\n")
        assert seen == []

    def test_failing_subscriber_does_not_break_parsing(self, parser, recorder, feed):
        def broken(event):
            raise ValueError("boom")

        parser.subscribe(broken)
        feed("hi\n$ ")
        assert recorder.of(EventKind.MESSAGE_END)[0].content == "hi"

    def test_reentrant_flush_is_deferred(self, parser, recorder):
        def write_back(event):
            parser.write("echo\n")
            parser.flush()

        unsubscribe = parser.on(EventKind.MESSAGE_START, write_back)
        parser.write("first\n")
        parser.flush()
        unsubscribe()
        assert chunk_contents(recorder) == ["first"]
        parser.flush()
        assert chunk_contents(recorder, partial=False) == ["first", "echo"]


class TestLifecycle:
    def test_invalid_chunk_type_ignored(self, parser, caplog):
        with caplog.at_level(logging.WARNING, logger="src.output_parser"):
            parser.write(12345)
        assert parser.get_state().stats.bytes_processed == 0
        assert any("int" in r.message for r in caplog.records)

    def test_reset_keeps_stats_and_clears_tail(self, parser, recorder, feed):
        feed("hi\n$ ")
        parser.write("dangling")
        parser.reset()
        parser.flush()
        assert parser.get_state().stats.messages_emitted == 1
        assert chunk_contents(recorder, partial=True) == []

    def test_destroy_releases_subscribers(self, parser, recorder):
        parser.destroy()
        assert parser.destroyed
        assert parser.events.subscriber_count == 0
        recorder.clear()
        parser.write("hello\n")
        parser.flush()
        assert recorder.events == []

    def test_destroy_is_idempotent(self, parser):
        parser.destroy()
        parser.destroy()
        parser.reset()
        assert parser.destroyed

    def test_destroy_discards_open_message(self, parser, recorder, feed):
        feed("still talking\n")
        parser.destroy()
        assert recorder.of(EventKind.MESSAGE_END) == []
        assert recorder.kinds()[-1] is EventKind.RESET

    def test_snapshot_dict_keys(self, parser, feed):
        feed("intro\n⏺ Read(a.txt)\n")
        data = parser.get_state().to_dict()
        assert data["state"] == "tool_call"
        assert data["previousState"] == "assistant"
        assert data["isInToolCall"] is True
        assert data["currentToolCall"] == {"name": "Read", "details": "a.txt"}
        assert data["contentBufferLength"] == len("intro\n")
        assert data["stats"]["tool_calls_detected"] == 0


class TestTimers:
    @pytest.mark.asyncio
    async def test_debounced_flush(self, recorder):
        parser = OutputParser(ParserConfig(buffer_flush_interval_ms=10, pause_threshold_ms=1000))
        parser.subscribe(recorder)
        parser.write("hello\n")
        assert recorder.events == []
        await asyncio.sleep(0.05)
        assert chunk_contents(recorder) == ["hello"]
        parser.destroy()

    @pytest.mark.asyncio
    async def test_burst_coalesced_into_one_flush(self, recorder):
        parser = OutputParser(ParserConfig(buffer_flush_interval_ms=30, pause_threshold_ms=1000))
        parser.subscribe(recorder)
        parser.write("he")
        parser.write("llo\n")
        await asyncio.sleep(0.08)
        assert chunk_contents(recorder) == ["hello"]
        assert chunk_contents(recorder, partial=True) == []
        parser.destroy()

    @pytest.mark.asyncio
    async def test_flush_cancels_pending_timer(self, recorder):
        parser = OutputParser(ParserConfig(buffer_flush_interval_ms=20, pause_threshold_ms=1000))
        parser.subscribe(recorder)
        parser.write("hello\nwor")
        parser.flush()
        await asyncio.sleep(0.05)
        # Only the explicit flush surfaced the partial tail
        assert chunk_contents(recorder, partial=True) == ["wor"]
        parser.destroy()

    @pytest.mark.asyncio
    async def test_pause_after_silence(self, recorder):
        parser = OutputParser(ParserConfig(buffer_flush_interval_ms=5, pause_threshold_ms=30))
        parser.subscribe(recorder)
        parser.write("hello\n")
        await asyncio.sleep(0.1)
        pauses = recorder.of(EventKind.PAUSE)
        assert len(pauses) == 1
        assert pauses[0].state is ParserState.ASSISTANT_RESPONSE
        assert pauses[0].content_length == len("hello\n")
        # Advisory only: the message is still open
        assert recorder.of(EventKind.MESSAGE_END) == []
        assert parser.state is ParserState.ASSISTANT_RESPONSE
        parser.destroy()

    @pytest.mark.asyncio
    async def test_no_pause_while_data_keeps_arriving(self, recorder):
        parser = OutputParser(ParserConfig(buffer_flush_interval_ms=5, pause_threshold_ms=60))
        parser.subscribe(recorder)
        for word in ["one\n", "two\n", "three\n", "four\n"]:
            parser.write(word)
            await asyncio.sleep(0.02)
        assert recorder.of(EventKind.PAUSE) == []
        parser.destroy()

    @pytest.mark.asyncio
    async def test_no_pause_when_idle(self, recorder):
        parser = OutputParser(ParserConfig(buffer_flush_interval_ms=5, pause_threshold_ms=20))
        parser.subscribe(recorder)
        parser.write("$ ")
        await asyncio.sleep(0.06)
        assert recorder.of(EventKind.PAUSE) == []
        parser.destroy()

    @pytest.mark.asyncio
    async def test_reset_cancels_timers(self, recorder):
        parser = OutputParser(ParserConfig(buffer_flush_interval_ms=10, pause_threshold_ms=20))
        parser.subscribe(recorder)
        parser.write("hello\n")
        parser.reset()
        await asyncio.sleep(0.06)
        assert recorder.kinds() == [EventKind.RESET]
        parser.destroy()

    @pytest.mark.asyncio
    async def test_destroy_cancels_timers(self, recorder):
        parser = OutputParser(ParserConfig(buffer_flush_interval_ms=10, pause_threshold_ms=20))
        parser.subscribe(recorder)
        parser.write("hello\n")
        parser.destroy()
        await asyncio.sleep(0.06)
        assert chunk_contents(recorder) == []
        assert recorder.of(EventKind.PAUSE) == []
