"""Prompting the user for key selection and confirmations."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional

logger = logging.getLogger(__name__)


class InputType(str, Enum):
    """Type of user input expected."""
    CHOICE = "choice"
    CONFIRM = "confirm"


class QuestionCategory(str, Enum):
    SELECTION = "selection"         # pick a key
    CONFIRMATION = "confirmation"   # proceed despite a soft failure


@dataclass
class InteractionRequest:
    """A question the core needs answered before it can continue."""

    question: str
    input_type: InputType = InputType.CHOICE
    options: List[str] = field(default_factory=list)
    category: QuestionCategory = QuestionCategory.SELECTION
    context: Optional[str] = None
    default: Optional[str] = None

    def format_prompt(self) -> str:
        """Format the request as a user-friendly prompt."""
        lines = [f"\n{self.question}"]
        if self.context:
            lines.append(f"  {self.context}")

        if self.input_type == InputType.CHOICE and self.options:
            for i, option in enumerate(self.options, 1):
                default_marker = " (default)" if self.default == option else ""
                lines.append(f"  [{i}] {option}{default_marker}")
        elif self.input_type == InputType.CONFIRM:
            lines.append(f"  [y/n] (default: {self.default or 'n'})")
        return "\n".join(lines)


@dataclass
class InteractionResponse:
    """User's response to an interaction request."""

    value: str
    selected_option: Optional[int] = None   # 1-based
    cancelled: bool = False

    @property
    def confirmed(self) -> bool:
        return not self.cancelled and self.value.lower() in ("y", "yes")

    @classmethod
    def from_choice(cls, option_index: int, options: List[str]) -> "InteractionResponse":
        if 1 <= option_index <= len(options):
            return cls(value=options[option_index - 1], selected_option=option_index)
        raise ValueError(f"Invalid option index: {option_index}")

    @classmethod
    def cancelled_response(cls) -> "InteractionResponse":
        return cls(value="", cancelled=True)


class UserInteractionHandler(ABC):
    """Abstract base class for handling user interactions."""

    @abstractmethod
    def ask(self, request: InteractionRequest) -> InteractionResponse:
        """Present a request to the user and get their response."""

    @abstractmethod
    def notify(self, message: str, level: str = "info") -> None:
        """Send a notification to the user (no response needed)."""

    def choose(self, question: str, options: List[str], *, context: Optional[str] = None) -> Optional[int]:
        """0-based index of the chosen option, or None when cancelled."""
        response = self.ask(
            InteractionRequest(
                question=question,
                input_type=InputType.CHOICE,
                options=options,
                context=context,
                default=options[0] if options else None,
            )
        )
        if response.cancelled or response.selected_option is None:
            return None
        return response.selected_option - 1

    def confirm(self, question: str, *, context: Optional[str] = None, default: str = "n") -> bool:
        response = self.ask(
            InteractionRequest(
                question=question,
                input_type=InputType.CONFIRM,
                category=QuestionCategory.CONFIRMATION,
                context=context,
                default=default,
            )
        )
        return response.confirmed


class CLIInteractionHandler(UserInteractionHandler):
    """Command-line interface interaction handler."""

    def __init__(
        self,
        input_func: Callable[[str], str] = input,
        output_func: Callable[[str], None] = print,
    ) -> None:
        self._input = input_func
        self._output = output_func

    def ask(self, request: InteractionRequest) -> InteractionResponse:
        self._output(request.format_prompt())
        try:
            if request.input_type == InputType.CHOICE:
                return self._handle_choice(request)
            return self._handle_confirm(request)
        except KeyboardInterrupt:
            self._output("\n  (cancelled)")
            return InteractionResponse.cancelled_response()
        except EOFError:
            return InteractionResponse.cancelled_response()

    def _handle_choice(self, request: InteractionRequest) -> InteractionResponse:
        while True:
            prompt = "  Select"
            if request.default in request.options:
                prompt += f" [{request.options.index(request.default) + 1}]"
            user_input = self._input(prompt + ": ").strip()

            if not user_input and request.default in request.options:
                return InteractionResponse.from_choice(
                    request.options.index(request.default) + 1, request.options
                )
            try:
                return InteractionResponse.from_choice(int(user_input), request.options)
            except ValueError:
                self._output(f"  Invalid option, enter 1-{len(request.options)}")

    def _handle_confirm(self, request: InteractionRequest) -> InteractionResponse:
        default = request.default or "n"
        while True:
            user_input = self._input("  Confirm? [y/n]: ").strip().lower() or default
            if user_input in ("y", "yes"):
                return InteractionResponse(value="yes")
            if user_input in ("n", "no"):
                return InteractionResponse(value="no")
            self._output("  Please answer y or n")

    def notify(self, message: str, level: str = "info") -> None:
        icons = {
            "info": "ℹ️",
            "warning": "⚠️",
            "error": "❌",
            "success": "✅",
        }
        self._output(f"{icons.get(level, '•')} {message}")


class CallbackInteractionHandler(UserInteractionHandler):
    """Interaction handler that delegates to callbacks (GUIs, tests)."""

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
    """
    Non-interactive handler: picks the first key and answers confirmations
    with a fixed policy.
    """

    def __init__(self, always_confirm: bool = True) -> None:
        self.always_confirm = always_confirm

    def ask(self, request: InteractionRequest) -> InteractionResponse:
        logger.info("Auto-responding to: %s", request.question[:60])
        if request.input_type == InputType.CONFIRM:
            return InteractionResponse(value="yes" if self.always_confirm else "no")
        if request.options:
            return InteractionResponse.from_choice(1, request.options)
        return InteractionResponse.cancelled_response()

    def notify(self, message: str, level: str = "info") -> None:
        logger.info("[%s] %s", level, message)
