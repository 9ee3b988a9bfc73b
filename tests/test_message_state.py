"""Unit tests for the message aggregator and the status projector."""

import logging

from capstream.schemas.stream import AssistantMessage
from capstream.services.message_aggregator import MessageAggregator
from capstream.services.status_projector import StatusProjector


class TestMessageAggregator:
    def test_fragments_are_joined(self) -> None:
        """Test fragments are joined with the smart append rules."""
        aggregator = MessageAggregator()
        for fragment in ["Block", "1", "234", " pools."]:
            assert aggregator.append(fragment)
        assert aggregator.message.content == "Block 1 234 pools."
        assert aggregator.message.streaming

    def test_letters_streamed_one_by_one_are_rejoined(self) -> None:
        """Test letters streamed one by one are rejoined at finalize."""
        aggregator = MessageAggregator()
        for fragment in ["Price of", " ", "A", "D", "A", " is up"]:
            aggregator.append(fragment)
        assert aggregator.message.content == "Price of A D A is up"
        aggregator.finalize()
        assert aggregator.message.content == "Price of ADA is up"

    def test_finalize_once(self) -> None:
        """Test finalize runs the finalizer exactly once."""
        calls = []

        def finalizer(text: str) -> str:
            calls.append(text)
            return text.upper()

        message = AssistantMessage(status_text="Running query")
        aggregator = MessageAggregator(message, finalizer=finalizer)
        aggregator.append("done")

        assert aggregator.finalize() is True
        assert aggregator.finalize() is False
        assert calls == ["done"]
        assert message.content == "DONE"
        assert message.streaming is False
        assert message.status_text == ""

    def test_append_after_finalize_is_ignored(self, caplog) -> None:
        """Test text appended after finalize is ignored and logged."""
        aggregator = MessageAggregator()
        aggregator.append("text")
        aggregator.finalize()

        with caplog.at_level(logging.WARNING, logger="capstream.aggregator"):
            assert aggregator.append(" more") is False
        assert aggregator.message.content == "text"
        assert "finalized message" in caplog.text

    def test_finalized_message_is_not_reopened(self) -> None:
        """Test a finalized message is never reopened."""
        aggregator = MessageAggregator(AssistantMessage(content="old", streaming=False))
        assert aggregator.finalized
        assert aggregator.append("new") is False
        assert aggregator.finalize() is False


class TestStatusProjector:
    def test_status_replaces(self) -> None:
        """Test a new status replaces the previous one."""
        projector = StatusProjector(AssistantMessage())
        assert projector.project("Planning")
        assert projector.project("Running query")
        assert projector.text == "Running query"

    def test_empty_status_is_ignored(self) -> None:
        """Test an empty status is ignored."""
        projector = StatusProjector(AssistantMessage(status_text="Planning"))
        assert projector.project("") is False
        assert projector.text == "Planning"

    def test_no_status_after_finalize(self) -> None:
        """Test no status is shown after the message is finalized."""
        message = AssistantMessage()
        projector = StatusProjector(message)
        MessageAggregator(message).finalize()
        assert projector.project("late") is False
        assert projector.text == ""

    def test_clear(self) -> None:
        """Test clear empties the status slot."""
        projector = StatusProjector(AssistantMessage(status_text="x"))
        projector.clear()
        assert projector.text == ""
