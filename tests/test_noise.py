"""Tests for termrelay.pty.noise.NoiseFilter."""

from __future__ import annotations

from termrelay.pty.noise import (
    CURSOR_POSITION_REQUEST,
    CURSOR_POSITION_RESPONSE,
    NoiseFilter,
)


def _make(dismiss: str = "2\r") -> tuple[NoiseFilter, list[str]]:
    replies: list[str] = []
    return NoiseFilter(replies.append, dismiss), replies


class TestCursorPositionRequest:
    def test_plain_output_passes_through(self) -> None:
        nf, replies = _make()
        assert nf.filter("hello") == "hello"
        assert replies == []

    def test_request_is_answered_and_stripped(self) -> None:
        nf, replies = _make()
        out = nf.filter(f"before{CURSOR_POSITION_REQUEST}after")
        assert out == "beforeafter"
        assert replies == [CURSOR_POSITION_RESPONSE]

    def test_every_occurrence_is_stripped_with_one_reply(self) -> None:
        nf, replies = _make()
        out = nf.filter(f"{CURSOR_POSITION_REQUEST}a{CURSOR_POSITION_REQUEST}b")
        assert out == "ab"
        assert replies == ["\x1b[1;1R"]

    def test_answered_on_every_chunk(self) -> None:
        nf, replies = _make()
        nf.filter(CURSOR_POSITION_REQUEST)
        nf.filter(CURSOR_POSITION_REQUEST)
        assert replies == [CURSOR_POSITION_RESPONSE, CURSOR_POSITION_RESPONSE]

    def test_chunk_of_only_a_request_becomes_empty(self) -> None:
        nf, _ = _make()
        assert nf.filter(CURSOR_POSITION_REQUEST) == ""


class TestUpdatePrompt:
    def test_first_occurrence_dismissed_and_dropped(self) -> None:
        nf, replies = _make()
        assert nf.filter("✨ Update available! 0.1 -> 0.2") is None
        assert replies == ["2\r"]
        assert nf.update_dismissed

    def test_second_occurrence_passes(self) -> None:
        nf, replies = _make()
        nf.filter("Update available")
        assert nf.filter("UPDATE AVAILABLE again") == "UPDATE AVAILABLE again"
        assert replies == ["2\r"]

    def test_dismiss_keys_are_configurable(self) -> None:
        nf, replies = _make(dismiss="\x1b\r")
        nf.filter("update available")
        assert replies == ["\x1b\r"]

    def test_cursor_request_is_answered_before_update_check(self) -> None:
        nf, replies = _make()
        out = nf.filter(f"{CURSOR_POSITION_REQUEST}Update available")
        assert out is None
        assert replies == [CURSOR_POSITION_RESPONSE, "2\r"]


class TestWrap:
    def test_wrap_forwards_filtered_chunks(self) -> None:
        nf, _ = _make()
        seen: list[str] = []
        on_data = nf.wrap(seen.append)
        on_data(f"a{CURSOR_POSITION_REQUEST}b")
        on_data("update available")
        on_data("c")
        assert seen == ["ab", "c"]
