from __future__ import annotations

from dataclasses import dataclass
from typing import Union

from convoflow.schemas.conversation import ConversationView, Record


@dataclass(frozen=True)
class Appended:
    """The stage appended a record; the pipeline should advance."""

    record: Record


@dataclass(frozen=True)
class Terminal:
    """The pipeline ends here with an assembled result."""

    result: ConversationView


@dataclass(frozen=True)
class Rejected:
    """Input is invalid for the stage. Never retried.

    ``out_of_turn`` marks a stage invoked in a state that does not accept it.
    """

    reason: str
    out_of_turn: bool = False


StageOutcome = Union[Appended, Terminal, Rejected]
