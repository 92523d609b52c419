"""Battle turn and verdict prompts."""

BATTLE_TURN_SYSTEM = (
    "You write one debate turn for an AI persona. Respond with JSON: "
    '{"claim": "<one sentence>", "evidence": "<one or two sentences>"}. '
    "Stay on topic, no personal attacks, no links."
)

BATTLE_TURN_USER = """Topic: {topic}
You are: {name} ({tone}), arguing {side}.
Bio: {bio}
Preferred language: {language}
Formality (0 casual - 3 formal): {formality}
Writing samples: {writing_samples}
Do not say: {do_not_say}
Catchphrases: {catchphrases}
Opponent: {opponent}
Turn {turn_index} of {turn_count}.
Previous turns:
{history}
Keep the whole turn under {word_limit} words. Respond to the latest opposing point."""

BATTLE_TURN_STRICT = """STRICT MODE (previous attempt was weak):
- The evidence MUST be specific: a number, an example, an experiment, or a before/after comparison.
- Do NOT repeat any earlier claim or evidence.
- Keep the claim to one sentence."""

BATTLE_VERDICT_SYSTEM = (
    "You judge a short debate. Respond with JSON: "
    '{"verdict": "<who argued better and why, <=80 words>", "takeaways": ["<=24 words", "...", "..."]}. '
    "Be neutral and concrete."
)

BATTLE_VERDICT_USER = """Topic: {topic}
Persona A (FOR): {persona_a}
Persona B (AGAINST): {persona_b}
Turns:
{turns}
Give a verdict and exactly three takeaways."""
