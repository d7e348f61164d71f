"""tests for the event-frame codec."""

from podcast_canvas.core.frames import (
    FrameDecoder,
    FrameType,
    done_frame,
    error_frame,
    parse_frame_line,
    text_frame,
)


class TestEncoding:
    """tests for frame encoders."""

    def test_text_frame_keeps_unicode(self):
        assert text_frame("古埃及") == 'data: {"text": "古埃及"}\n\n'.encode("utf-8")

    def test_done_and_error(self):
        assert done_frame() == b'data: {"done": true}\n\n'
        assert error_frame("boom") == b'data: {"error": "boom"}\n\n'


class TestParseLine:
    """tests for parse_frame_line."""

    def test_blank_and_comment_lines_carry_nothing(self):
        assert parse_frame_line("") == []
        assert parse_frame_line(": keepalive") == []

    def test_malformed_is_none(self):
        assert parse_frame_line("data: {not json") is None
        assert parse_frame_line("data: [1, 2]") is None

    def test_error_wins(self):
        frames = parse_frame_line('data: {"text": "x", "error": "bad"}')
        assert [f.type for f in frames] == [FrameType.ERROR]
        assert frames[0].error == "bad"


class TestFrameDecoder:
    """tests for incremental decoding."""

    def test_frames_split_across_chunks(self):
        payload = text_frame("古埃及") + text_frame("人如何") + done_frame()
        decoder = FrameDecoder()
        frames = []
        for i in range(len(payload)):
            frames.extend(decoder.feed(payload[i:i + 1]))
        assert [f.text for f in frames if f.type == FrameType.TEXT] == ["古埃及", "人如何"]
        assert frames[-1].type == FrameType.DONE

    def test_unterminated_frame_waits_for_delimiter(self):
        decoder = FrameDecoder()
        assert decoder.feed(b'data: {"text": "a"}') == []
        frames = decoder.feed(b"\n")
        assert frames[0].text == "a"

    def test_malformed_frames_skipped_and_counted(self):
        decoder = FrameDecoder()
        frames = decoder.feed(b'data: {oops}\n\ndata: {"text": "ok"}\n\n')
        assert [f.text for f in frames] == ["ok"]
        assert decoder.skipped == 1

    def test_flush_decodes_residual(self):
        decoder = FrameDecoder()
        assert decoder.feed(b'data: {"text": "tail"}') == []
        frames = decoder.flush()
        assert [f.text for f in frames] == ["tail"]

    def test_accepts_str_chunks(self):
        frames = FrameDecoder().feed('data: {"text": "x"}\n')
        assert frames[0].text == "x"
