"""Tests for user interaction module."""

import io
from unittest.mock import patch

import pytest
from rich.console import Console

from radius_gitops.errors import OperationCancelled
from radius_gitops.interaction import (
    AutoResponseHandler,
    CallbackInteractionHandler,
    CLIInteractionHandler,
    InputType,
    InteractionRequest,
    InteractionResponse,
    QuestionCategory,
)


class TestInteractionRequest:
    """Tests for InteractionRequest dataclass."""

    def test_defaults(self):
        request = InteractionRequest(question="Which model?")
        assert request.input_type == InputType.CHOICE
        assert request.category == QuestionCategory.SELECTION
        assert request.options == []

    def test_format_prompt_with_options(self):
        request = InteractionRequest(
            question="Which plan?",
            options=["todo/dev", "todo/prod"],
            default="todo/prod",
            context="Found 2 plans",
        )
        assert request.format_prompt().splitlines() == [
            "Found 2 plans",
            "🤔 Which plan?",
            "   [1] todo/dev",
            "   [2] todo/prod (default)",
        ]

    def test_format_prompt_confirmation(self):
        request = InteractionRequest(
            question="Deploy?",
            input_type=InputType.CONFIRM,
            category=QuestionCategory.CONFIRMATION,
            options=["ignored"],
        )
        assert request.format_prompt() == "⚠️ Deploy?"


class TestInteractionResponse:
    def test_from_choice(self):
        response = InteractionResponse.from_choice(2, ["a", "b"])
        assert response.value == "b"
        assert response.selected_option == 2

    def test_from_choice_out_of_range(self):
        with pytest.raises(ValueError):
            InteractionResponse.from_choice(3, ["a", "b"])

    @pytest.mark.parametrize("value,expected", [("yes", True), ("Y", True), ("true", True), ("no", False), ("", False)])
    def test_is_yes(self, value, expected):
        assert InteractionResponse(value=value).is_yes is expected

    def test_cancelled_is_never_yes(self):
        response = InteractionResponse.cancelled_response()
        assert response.cancelled
        assert not response.is_yes


class TestAutoResponseHandler:
    def test_confirms_by_default(self):
        handler = AutoResponseHandler()
        assert handler.confirm("Proceed with deployment?") is True
        assert handler.requests[0].category == QuestionCategory.CONFIRMATION

    def test_declines_when_configured(self):
        assert AutoResponseHandler(always_confirm=False).confirm("Proceed?") is False

    def test_keyword_responses_win(self):
        handler = AutoResponseHandler(default_responses={"overwrite": "no"})
        assert handler.confirm("Overwrite existing plan?") is False
        assert handler.confirm("Deploy now?") is True

    def test_select_and_text(self):
        handler = AutoResponseHandler()
        assert handler.select_one(["a.bicep", "b.bicep"], "Which model?") == "a.bicep"
        assert handler.text_input("Name?", default="todo") == "todo"

    def test_select_invalid_value_cancels(self):
        handler = AutoResponseHandler(default_responses={"model": "c.bicep"})
        with pytest.raises(OperationCancelled):
            handler.select_one(["a.bicep", "b.bicep"], "Which model?")

    def test_select_needs_options(self):
        with pytest.raises(ValueError):
            AutoResponseHandler().select_one([], "Which?")

    def test_notifications_are_kept(self):
        handler = AutoResponseHandler()
        handler.notify("Plan written", level="success")
        assert handler.notifications == [("success", "Plan written")]


class TestCallbackHandler:
    def test_delegates(self):
        seen = []
        handler = CallbackInteractionHandler(
            ask_callback=lambda request: InteractionResponse.cancelled_response(),
            notify_callback=lambda message, level: seen.append((level, message)),
        )
        with pytest.raises(OperationCancelled):
            handler.text_input("Name?")
        assert handler.confirm("Proceed?") is False
        handler.notify("hello", "warning")
        assert seen == [("warning", "hello")]


class TestCLIHandler:
    def _handler(self):
        return CLIInteractionHandler(console=Console(file=io.StringIO(), color_system=None))

    def test_confirm(self):
        handler = self._handler()
        with patch("radius_gitops.interaction.handler.Confirm.ask", return_value=True) as ask:
            assert handler.confirm("Deploy?", context="3 steps") is True
        assert ask.call_args.kwargs["default"] is False
        assert "3 steps" in handler.console.file.getvalue()

    def test_choice(self):
        handler = self._handler()
        with patch("radius_gitops.interaction.handler.Prompt.ask", return_value="2") as ask:
            assert handler.select_one(["dev", "prod"], "Which environment?") == "prod"
        assert ask.call_args.kwargs["choices"] == ["1", "2"]
        assert ask.call_args.kwargs["default"] == "1"

    def test_text(self):
        handler = self._handler()
        with patch("radius_gitops.interaction.handler.Prompt.ask", return_value="  todo  "):
            assert handler.text_input("Application name?") == "todo"

    def test_interrupt_cancels(self):
        handler = self._handler()
        with patch("radius_gitops.interaction.handler.Confirm.ask", side_effect=KeyboardInterrupt):
            assert handler.confirm("Deploy?") is False
        assert "(cancelled)" in handler.console.file.getvalue()

    def test_notify(self):
        handler = self._handler()
        handler.notify("Something failed", level="error")
        assert "Something failed" in handler.console.file.getvalue()
