"""
Orchestrator state models

States driving the interactive walk over a document's sections.
"""

from enum import Enum


class Outcome(Enum):
    """Result of presenting one section to the operator"""
    CONTINUE = "continue"    # move on to the next section
    EXIT = "exit"            # operator asked to stop the whole run


class CodeState(Enum):
    """
    States of the run/rerun/skip/exit interaction for one code fence

    Transitions:
        AWAIT_CHOICE --r--> RUN --> RAN --r/other--> RUN
        AWAIT_CHOICE --s/empty/x--> DONE
        AWAIT_CHOICE --other--> AWAIT_CHOICE
        RAN --s/empty/x--> DONE
    """
    AWAIT_CHOICE = "await_choice"
    RUN = "run"
    RAN = "ran"
    DONE = "done"
