"""Operator interaction: confirmations, selections and notifications."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional

from rich.console import Console
from rich.prompt import Confirm, Prompt

from ..errors import OperationCancelled

logger = logging.getLogger(__name__)


class InputType(str, Enum):
    """Type of user input expected."""
    CHOICE = "choice"       # pick one of `options`
    TEXT = "text"           # free text
    CONFIRM = "confirm"     # yes/no


class QuestionCategory(str, Enum):
    """Category of questions for context."""
    SELECTION = "selection"         # which model, which plan
    CONFIRMATION = "confirmation"   # deploy/delete/overwrite gates
    INFORMATION = "information"     # values we could not infer


@dataclass
class InteractionRequest:
    """A question for the operator."""

    question: str
    input_type: InputType = InputType.CHOICE
    options: List[str] = field(default_factory=list)
    category: QuestionCategory = QuestionCategory.SELECTION
    context: Optional[str] = None               # extra lines shown above the question
    default: Optional[str] = None

    def format_prompt(self) -> str:
        """Format the request as a user-friendly prompt."""
        icons = {
            QuestionCategory.SELECTION: "🤔",
            QuestionCategory.CONFIRMATION: "⚠️",
            QuestionCategory.INFORMATION: "📝",
        }
        lines = []
        if self.context:
            lines.append(self.context)
        lines.append(f"{icons.get(self.category, '❓')} {self.question}")
        if self.input_type == InputType.CHOICE and self.options:
            for i, option in enumerate(self.options, 1):
                default_marker = " (default)" if self.default == option else ""
                lines.append(f"   [{i}] {option}{default_marker}")
        return "\n".join(lines)


@dataclass
class InteractionResponse:
    """Operator's answer to an interaction request."""

    value: str
    selected_option: Optional[int] = None   # 1-based
    cancelled: bool = False

    @classmethod
    def from_choice(cls, option_index: int, options: List[str]) -> "InteractionResponse":
        if 1 <= option_index <= len(options):
            return cls(value=options[option_index - 1], selected_option=option_index)
        raise ValueError(f"Invalid option index: {option_index}")

    @classmethod
    def cancelled_response(cls) -> "InteractionResponse":
        return cls(value="", cancelled=True)

    @property
    def is_yes(self) -> bool:
        return not self.cancelled and self.value.strip().lower() in ("y", "yes", "true")


class UserInteractionHandler(ABC):
    """Abstract base class for handling operator interactions.

    Subclasses implement :meth:`ask` and :meth:`notify`; the prompter methods
    (:meth:`confirm`, :meth:`select_one`, :meth:`text_input`) are built on them.
    """

    @abstractmethod
    def ask(self, request: InteractionRequest) -> InteractionResponse:
        """Present a request to the operator and return the answer."""

    @abstractmethod
    def notify(self, message: str, level: str = "info") -> None:
        """Show a message that needs no answer (level: info, warning, error, success)."""

    def confirm(self, prompt: str, default: bool = False, context: Optional[str] = None) -> bool:
        response = self.ask(InteractionRequest(
            question=prompt,
            input_type=InputType.CONFIRM,
            category=QuestionCategory.CONFIRMATION,
            context=context,
            default="yes" if default else "no",
        ))
        return response.is_yes

    def select_one(self, options: List[str], prompt: str) -> str:
        if not options:
            raise ValueError("select_one needs at least one option")
        response = self.ask(InteractionRequest(
            question=prompt,
            input_type=InputType.CHOICE,
            options=list(options),
            default=options[0],
        ))
        if response.cancelled:
            raise OperationCancelled()
        if response.value not in options:
            raise OperationCancelled(f"Invalid selection: {response.value}")
        return response.value

    def text_input(self, prompt: str, default: str = "") -> str:
        response = self.ask(InteractionRequest(
            question=prompt,
            input_type=InputType.TEXT,
            category=QuestionCategory.INFORMATION,
            default=default or None,
        ))
        if response.cancelled:
            raise OperationCancelled()
        return response.value or default


class CLIInteractionHandler(UserInteractionHandler):
    """Terminal interaction handler rendered with rich."""

    def __init__(self, console: Optional[Console] = None) -> None:
        self.console = console or Console()

    def ask(self, request: InteractionRequest) -> InteractionResponse:
        try:
            if request.input_type == InputType.CONFIRM:
                return self._handle_confirm(request)
            if request.input_type == InputType.CHOICE:
                return self._handle_choice(request)
            return self._handle_text(request)
        except (KeyboardInterrupt, EOFError):
            self.console.print("\n   (cancelled)")
            return InteractionResponse.cancelled_response()

    def _handle_confirm(self, request: InteractionRequest) -> InteractionResponse:
        if request.context:
            self.console.print(request.context)
        answer = Confirm.ask(request.question, default=request.default == "yes", console=self.console)
        return InteractionResponse(value="yes" if answer else "no")

    def _handle_choice(self, request: InteractionRequest) -> InteractionResponse:
        self.console.print(request.format_prompt())
        choices = [str(i) for i in range(1, len(request.options) + 1)]
        default_idx = "1"
        if request.default in request.options:
            default_idx = str(request.options.index(request.default) + 1)
        picked = Prompt.ask("   Select", choices=choices, default=default_idx, console=self.console)
        return InteractionResponse.from_choice(int(picked), request.options)

    def _handle_text(self, request: InteractionRequest) -> InteractionResponse:
        value = Prompt.ask(request.question, default=request.default or "", console=self.console)
        return InteractionResponse(value=value.strip())

    def notify(self, message: str, level: str = "info") -> None:
        styles = {
            "info": "",
            "warning": "yellow",
            "error": "bold red",
            "success": "green",
        }
        self.console.print(message, style=styles.get(level, ""), highlight=False)


class CallbackInteractionHandler(UserInteractionHandler):
    """Interaction handler that delegates to callbacks (embedding, tests)."""

    def __init__(
        self,
        ask_callback: Callable[[InteractionRequest], InteractionResponse],
        notify_callback: Optional[Callable[[str, str], None]] = None,
    ) -> None:
        self.ask_callback = ask_callback
        self.notify_callback = notify_callback or (lambda msg, lvl: logger.info("[%s] %s", lvl, msg))

    def ask(self, request: InteractionRequest) -> InteractionResponse:
        return self.ask_callback(request)

    def notify(self, message: str, level: str = "info") -> None:
        self.notify_callback(message, level)


class AutoResponseHandler(UserInteractionHandler):
    """Non-interactive handler for `--yes`, CI and tests.

    Confirmations resolve to ``always_confirm``; choices to the first option;
    questions matching a keyword in ``default_responses`` get that answer.
    Every request and notification is kept for inspection.
    """

    def __init__(
        self,
        default_responses: Optional[Dict[str, str]] = None,
        always_confirm: bool = True,
    ) -> None:
        self.default_responses = default_responses or {}
        self.always_confirm = always_confirm
        self.requests: List[InteractionRequest] = []
        self.notifications: List[tuple] = []

    def ask(self, request: InteractionRequest) -> InteractionResponse:
        self.requests.append(request)
        logger.debug("Auto-responding to: %s", request.question[:60])

        for keyword, response in self.default_responses.items():
            if keyword.lower() in request.question.lower():
                return InteractionResponse(value=response)

        if request.input_type == InputType.CONFIRM:
            return InteractionResponse(value="yes" if self.always_confirm else "no")
        if request.input_type == InputType.CHOICE and request.options:
            return InteractionResponse.from_choice(1, request.options)
        return InteractionResponse(value=request.default or "")

    def notify(self, message: str, level: str = "info") -> None:
        self.notifications.append((level, message))
        logger.info("[%s] %s", level, message)
