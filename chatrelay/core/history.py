"""Folding of an OpenAI message list into question/answer turns."""

from dataclasses import asdict, dataclass
from typing import Any, Mapping, Sequence

from .content import extract_text


@dataclass
class ChatTurn:
    """One prior exchange. Either side may be empty, never absent."""

    question: str = ""
    answer: str = ""

    def to_dict(self) -> dict[str, str]:
        return asdict(self)


def fold_system_into_user(messages: Sequence[Mapping[str, Any]]) -> list[Mapping[str, Any]]:
    """Merge every system message into one leading user message.

    System texts are newline-joined in their original order. Without any
    system message the input is returned as a new list, unchanged.
    """
    system_texts: list[str] = []
    rest: list[Mapping[str, Any]] = []
    has_system = False
    for message in messages:
        if message.get("role") == "system":
            has_system = True
            system_texts.append(extract_text(message.get("content")))
        else:
            rest.append(message)
    if not has_system:
        return list(messages)
    return [{"role": "user", "content": "\n".join(system_texts)}, *rest]


def build_history(messages: Sequence[Mapping[str, Any]]) -> list[ChatTurn]:
    """Build turns from every message except the last (the live query).

    Consecutive same-role messages are merged with newlines, a leading
    assistant message becomes a turn with an empty question, and a trailing
    question without answer is flushed with an empty answer.
    """
    turns: list[ChatTurn] = []
    question = ""
    answer = ""
    has_question = False
    has_answer = False

    for message in messages[:-1]:
        role = message.get("role")
        text = extract_text(message.get("content"))
        if role == "user":
            if has_question and has_answer:
                turns.append(ChatTurn(question, answer))
                question, answer = text, ""
                has_answer = False
            elif has_question:
                question += "\n" + text
            else:
                question = text
                has_question = True
        elif role == "assistant":
            if has_question and not has_answer:
                answer = text
                has_answer = True
            elif has_answer:
                answer += "\n" + text
            else:
                question, answer = "", text
                has_question = has_answer = True

    if has_question:
        turns.append(ChatTurn(question, answer if has_answer else ""))
    return turns
