"""Unit tests for the conversation binding guard."""

from capstream.services.binding_guard import ConversationBindingGuard


class View:
    def __init__(self, shown=None):
        self.shown = shown


class TestBindingGuard:
    def test_new_conversation_before_metadata(self) -> None:
        """Test frames are allowed while a new conversation has no id on either side."""
        view = View()
        guard = ConversationBindingGuard(lambda: view.shown)
        assert guard.target is None
        assert guard.allows()

    def test_new_conversation_after_metadata(self) -> None:
        """Test frames are held until the view shows the newly resolved id."""
        view = View()
        guard = ConversationBindingGuard(lambda: view.shown)
        guard.bind("c1")
        assert not guard.allows()
        view.shown = "c1"
        assert guard.allows()

    def test_navigation_is_read_on_every_check(self) -> None:
        """Test the shown conversation is re-read on every check."""
        view = View("c1")
        guard = ConversationBindingGuard(lambda: view.shown, started_conversation_id="c1")
        assert guard.allows()
        view.shown = "c2"
        assert not guard.allows()
        view.shown = None
        assert not guard.allows()
        view.shown = "c1"
        assert guard.allows()

    def test_first_resolved_id_wins(self) -> None:
        """Test the first resolved id is the one the guard keeps."""
        guard = ConversationBindingGuard(lambda: None)
        assert guard.bind("a") is True
        assert guard.bind("b") is False
        assert guard.target == "a"

    def test_empty_ids_do_not_bind(self) -> None:
        """Test empty ids never bind the guard."""
        guard = ConversationBindingGuard(lambda: None, started_conversation_id="  ")
        assert guard.target is None
        assert guard.bind("") is False
        assert guard.bind(None) is False
        assert guard.target is None

    def test_ids_compare_as_strings(self) -> None:
        """Test ids are compared as strings."""
        guard = ConversationBindingGuard(lambda: 42)
        guard.bind(42)
        assert guard.target == "42"
        assert guard.allows()
