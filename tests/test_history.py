"""Tests for history folding."""

import pytest

from chatrelay.core.history import ChatTurn, build_history, fold_system_into_user


def _msg(role: str, content) -> dict:
    return {"role": role, "content": content}


class TestFoldSystemIntoUser:
    """Tests for fold_system_into_user."""

    def test_system_becomes_leading_user_message(self):
        messages = [_msg("system", "A"), _msg("user", "B"), _msg("assistant", "C"), _msg("user", "D")]

        folded = fold_system_into_user(messages)

        assert folded == [_msg("user", "A"), _msg("user", "B"), _msg("assistant", "C"), _msg("user", "D")]

    def test_multiple_system_messages_are_joined_in_order(self):
        messages = [_msg("system", "one"), _msg("user", "q"), _msg("system", "two")]

        folded = fold_system_into_user(messages)

        assert folded[0] == _msg("user", "one\ntwo")
        assert folded[1:] == [_msg("user", "q")]

    def test_without_system_messages_input_is_unchanged(self):
        messages = [_msg("user", "q"), _msg("assistant", "a")]
        folded = fold_system_into_user(messages)
        assert folded == messages
        assert folded is not messages


class TestBuildHistory:
    """Tests for build_history."""

    @pytest.mark.parametrize("pairs", [1, 2, 5])
    def test_alternating_conversation_gives_one_turn_per_pair(self, pairs):
        messages = []
        for index in range(pairs):
            messages.append(_msg("user", f"question {index}"))
            messages.append(_msg("assistant", f"answer {index}"))
        messages.append(_msg("user", "live query"))

        turns = build_history(messages)

        assert len(turns) == pairs
        for index, turn in enumerate(turns):
            assert turn == ChatTurn(f"question {index}", f"answer {index}")

    def test_folded_system_prompt_merges_into_first_question(self):
        messages = fold_system_into_user(
            [_msg("system", "A"), _msg("user", "B"), _msg("assistant", "C"), _msg("user", "D")]
        )
        assert build_history(messages) == [ChatTurn("A\nB", "C")]

    def test_last_message_is_never_history(self):
        assert build_history([_msg("user", "only")]) == []

    def test_leading_assistant_has_empty_question(self):
        messages = [_msg("assistant", "greeting"), _msg("user", "hi"), _msg("assistant", "hello"), _msg("user", "q")]

        assert build_history(messages) == [ChatTurn("", "greeting"), ChatTurn("hi", "hello")]

    def test_trailing_question_is_flushed_with_empty_answer(self):
        messages = [_msg("user", "first"), _msg("assistant", "reply"), _msg("user", "dangling"), _msg("user", "live")]

        turns = build_history(messages)

        assert turns == [ChatTurn("first", "reply"), ChatTurn("dangling", "")]

    def test_consecutive_assistant_messages_are_merged(self):
        messages = [_msg("user", "q"), _msg("assistant", "part 1"), _msg("assistant", "part 2"), _msg("user", "live")]

        assert build_history(messages) == [ChatTurn("q", "part 1\npart 2")]

    def test_tool_messages_are_skipped(self):
        messages = [_msg("user", "q"), _msg("tool", "result"), _msg("assistant", "a"), _msg("user", "live")]

        assert build_history(messages) == [ChatTurn("q", "a")]

    def test_part_list_content_uses_text_parts(self):
        content = [{"type": "text", "text": "see"}, {"type": "image_url", "image_url": {"url": "https://x/y.png"}}]
        messages = [_msg("user", content), _msg("assistant", "ok"), _msg("user", "live")]

        assert build_history(messages) == [ChatTurn("see", "ok")]

    def test_turn_serializes_both_fields(self):
        assert ChatTurn(answer="only answer").to_dict() == {"question": "", "answer": "only answer"}
