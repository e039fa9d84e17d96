"""Prompts for model-based transcript rewrites."""

import html
import re

# Instructions longer than this are truncated before reaching the model
MAX_INSTRUCTION_LENGTH = 2000

_INJECTION_PATTERNS = [
    r"system:",
    r"assistant:",
    r"<\|.*?\|>",  # Special tokens
    r"\[INST\]",   # Instruction markers
    r"\[/INST\]",
]


def sanitize_prompt_input(text: str, max_length: int = MAX_INSTRUCTION_LENGTH) -> str:
    """Sanitize user-provided instruction text before prompt inclusion.

    Removes non-printable characters and role/special-token markers, escapes
    angle brackets so the text cannot close the surrounding XML tags, and
    caps the length.
    """
    if not text:
        return ""

    sanitized = "".join(char for char in text if char.isprintable() or char.isspace())
    # Quotes stay literal: "change 'Jon' to 'John'" must reach the model intact
    sanitized = html.escape(sanitized, quote=False)

    for pattern in _INJECTION_PATTERNS:
        sanitized = re.sub(pattern, "", sanitized, flags=re.IGNORECASE)

    if len(sanitized) > max_length:
        sanitized = sanitized[:max_length]

    return sanitized.strip()


REWRITE_SYSTEM = """You edit meeting transcripts according to a user's correction instructions.

INPUT FORMAT:
The transcript is a sequence of speaker blocks separated by one blank line.
Each block is "<speaker tag>: <text>", for example:

Speaker A: Hello everyone.

Speaker B: Thanks for joining.

STRICT OUTPUT RULES (timestamps depend on these):
1. Return EXACTLY the same number of blocks as the input, in the same order
2. Start every block with the SAME speaker tag as the corresponding input block
3. Do NOT merge, split, add or remove blocks, even if a block becomes empty or redundant
4. Separate blocks with exactly one blank line
5. Change only what the instructions ask for; leave all other wording untouched
6. Do NOT add commentary, headings, code fences or explanations

Return only the corrected transcript."""


REWRITE_USER = """Apply these corrections to the transcript.

<instructions>
{instructions}
</instructions>

<transcript>
{transcript}
</transcript>

The transcript has {block_count} speaker blocks. Your output must have {block_count} speaker blocks."""


def build_rewrite_prompt(full_text: str, instruction: str) -> str:
    """Build the user message for a rewrite request."""
    block_count = len([b for b in re.split(r"\n\s*\n", full_text.strip()) if b.strip()])
    return REWRITE_USER.format(
        instructions=sanitize_prompt_input(instruction),
        transcript=full_text,
        block_count=block_count,
    )


_FENCE = re.compile(r"^```[\w-]*\s*\n(?P<body>.*?)\n```\s*$", re.DOTALL)
_TRANSCRIPT_TAG = re.compile(r"^<transcript>\s*(?P<body>.*?)\s*</transcript>$", re.DOTALL)


def clean_model_output(text: str) -> str:
    """Strip code fences or a <transcript> wrapper the model may echo back."""
    text = text.strip()
    for pattern in (_FENCE, _TRANSCRIPT_TAG):
        m = pattern.match(text)
        if m:
            text = m.group("body").strip()
    return text
