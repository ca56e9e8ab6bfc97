COUNSEL_TEMPLATE = (
    "Provide biblical counsel, wisdom, and encouragement for the following situation or question. "
    "Focus on relevant scripture and Christian principles, offering practical guidance. "
    'The input is: "{problem}"'
)

PRAYER_TEMPLATE = (
    'Based on the following problem: "{problem}", generate a concise prayer prompt or a short prayer '
    "focusing on seeking God's wisdom, strength, and comfort."
)

STEPS_TEMPLATE = (
    'Based on the following biblical counsel: "{counsel}", and the original problem: "{problem}", '
    "suggest 3-5 practical, actionable steps or reflection questions a person can take to apply "
    "this counsel in their life."
)


def counsel_prompt(problem: str) -> str:
    return COUNSEL_TEMPLATE.format(problem=problem)


def prayer_prompt(problem: str) -> str:
    return PRAYER_TEMPLATE.format(problem=problem)


def steps_prompt(counsel: str, problem: str) -> str:
    return STEPS_TEMPLATE.format(counsel=counsel, problem=problem)
