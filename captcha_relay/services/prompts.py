"""Prompt templates for the inference provider.

The answer is stored verbatim as the task solution, so the instruction asks
for the bare string or number with no surrounding text.
"""

CAPTCHA_PROMPT = (
    "Analyze this captcha image. If it contains a mathematical expression, "
    "solve it and respond with only the numerical result. If it contains a "
    "string of characters, respond with only that string. "
    "Do not include any explanation."
)
