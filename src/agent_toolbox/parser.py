# parser.py
# Turns free-text planning output into an AgentAction or an AgentFinish.
#
# Strict literal, case-sensitive substring matching. Missing or ambiguous
# markers are an error — never a best-effort guess.

from typing import Sequence

from agent_toolbox.models import AgentAction, AgentDecision, AgentFinish

FOLLOWUP_PREFIX = "Follow up:"
INTERMEDIATE_ANSWER_PREFIX = "Intermediate Answer:"
FINISH_PREFIXES = (
    "Final answer:",
    "So the final answer is:",
    "So the final answer could be:",
)
INTERMEDIATE_ANSWER_TOOL = "Intermediate Answer"


class ParserError(Exception):
    """Raised when model output matches none of the expected markers."""

    def __init__(self, text: str) -> None:
        self.text = text
        super().__init__(f"Could not parse model output:\n{text}")


class ConversationalOutputParser:
    """
    Self-ask style parser.

    A follow-up question becomes an action on the intermediate-answer tool;
    otherwise the first finish marker found (markers tried in priority order)
    delimits the final answer.
    """

    def __init__(
        self,
        followup_prefix: str = FOLLOWUP_PREFIX,
        intermediate_answer_prefix: str = INTERMEDIATE_ANSWER_PREFIX,
        acceptable_finish_prefixes: Sequence[str] = FINISH_PREFIXES,
        intermediate_answer_tool: str = INTERMEDIATE_ANSWER_TOOL,
    ) -> None:
        self.followup_prefix = followup_prefix
        self.intermediate_answer_prefix = intermediate_answer_prefix
        self.acceptable_finish_prefixes = list(acceptable_finish_prefixes)
        self.intermediate_answer_tool = intermediate_answer_tool

    def parse(self, text: str) -> AgentDecision:
        followup_idx = text.find(self.followup_prefix)
        if followup_idx != -1:
            question_start = followup_idx + len(self.followup_prefix)
            answer_idx = text.find(self.intermediate_answer_prefix, question_start)
            if answer_idx == -1:
                raise ParserError(text)
            question = text[question_start:answer_idx].strip()
            return AgentAction(
                tool=self.intermediate_answer_tool,
                tool_input=question,
                log=text[:answer_idx],
            )

        for prefix in self.acceptable_finish_prefixes:
            idx = text.find(prefix)
            if idx != -1:
                return AgentFinish(
                    return_values={"output": text[idx + len(prefix) :].strip()},
                    log=text,
                )

        raise ParserError(text)
