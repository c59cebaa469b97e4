"""System instructions and user prompts for trigger generation."""

from __future__ import annotations

from ..ai.backends import GenerationRequest
from ..triggers.scanner import Trigger, TriggerKind, split_update_topic

__all__ = [
    "CURRENT_FILE_DELIMITER",
    "build_request",
    "build_system_instruction",
    "build_user_prompt",
]

CURRENT_FILE_DELIMITER = "--- CURRENT FILE (LATEST) ---"

_PERSONA = """You are a helpful writer helping user to write articles in Markdown format.

The full context is (will be) provided."""


def build_system_instruction(trigger: Trigger) -> str:
    """Return the fixed instruction for ``trigger.kind`` filled with its topic."""

    if trigger.kind is TriggerKind.TEMPLATE:
        return _template_instruction(trigger.topic)
    if trigger.kind is TriggerKind.UPDATE:
        parts = split_update_topic(trigger.topic)
        return _update_instruction(parts.instruction, parts.prior_content)
    return _write_instruction(trigger.topic)


def build_user_prompt(context: str, current_document: str) -> str:
    """Concatenate the other context sources with the live document.

    The live text goes last under a delimiter so it wins over any stale copy
    of the same file included in ``context``.
    """

    return f"{context}\n\n{CURRENT_FILE_DELIMITER}\n\n{current_document}"


def build_request(
    trigger: Trigger,
    current_document: str,
    context: str,
    *,
    model: str = "",
    credential: str = "",
) -> GenerationRequest:
    return GenerationRequest(
        system_instruction=build_system_instruction(trigger),
        user_prompt=build_user_prompt(context, current_document),
        model=model,
        credential=credential,
    )


def _template_instruction(topic: str) -> str:
    return f"""{_PERSONA}

Now, the user is requesting to generate a concise template, or a writing plan for this topic:

{topic}

IMPORTANT NOTES:

1. You should output and only output the template or the writing plan. NEVER use Markdown code block (triple backticks) to wrap the whole output.
2. The template or writing plan should use markdown level 2 title (##) to represent sections.
3. For each section, use ai-write codeblocks to describe your plan so that it is easier for users.
4. User might read your template and use AI to write section by section, so make sure you plan the order well for the sections. For example, if section B needs some information from section A, it should be placed after section A.
5. For each section, if available, add emojis to make the document more lively.
"""


def _write_instruction(topic: str) -> str:
    return f"""{_PERSONA}

Now, the user is requesting to write about this topic:

{topic}

You should check the latest information from the Internet and provide details about this topic.

IMPORTANT NOTES:

1. You should output and only output the section. NEVER use Markdown code block (triple backticks) to wrap the whole output.
2. Your output will be used to replace the original lines.
3. You should strictly focus on the topics user requested and don't include anything else.
"""


def _update_instruction(instruction: str, prior_content: str) -> str:
    return f"""{_PERSONA}

Now, the user is requesting to revise existing content according to this instruction:

{instruction}

The content to revise is:

{prior_content}

IMPORTANT NOTES:

1. You should output and only output the revised content. NEVER use Markdown code block (triple backticks) to wrap the whole output.
2. Your output will be used to replace the original lines.
3. Keep every fact from the original content. Change tone, structure, or level of detail only as the instruction asks.
"""
