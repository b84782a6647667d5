"""Prompt fragments used to assemble the relay's system message."""

STUDY_ASSISTANT_PREAMBLE = (
    "You are a concise study assistant. Use the provided chapter content as "
    "primary context when replying."
)

SELECTION_TEMPLATE = 'The user highlighted: """{selection}"""'

CHAPTER_TEMPLATE = "Chapter content:\n{chapter}"

# Closing instruction; keeps replies in whatever language the reader writes in.
LANGUAGE_INSTRUCTION = (
    "Respond in the same language the user uses and keep answers brief but clear."
)


def build_system_prompt(chapter: str, selection: str) -> str:
    """Join the non-empty context parts, in order, with blank lines."""
    parts = [
        STUDY_ASSISTANT_PREAMBLE,
        SELECTION_TEMPLATE.format(selection=selection) if selection else "",
        CHAPTER_TEMPLATE.format(chapter=chapter) if chapter else "",
        LANGUAGE_INSTRUCTION,
    ]
    return "\n\n".join(part for part in parts if part)
