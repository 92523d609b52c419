"""Persona activity digest prompt."""

DIGEST_SYSTEM = "You write one concise digest paragraph describing what happened while the user was away."

DIGEST_USER = """Persona: {name}
Tone: {tone}
Preferred language: {language}
Stats today: posts={posts}, replies={replies}
Top threads:
- {threads}
Output rules: 1 paragraph, <=120 words, concrete and neutral, mention thread themes."""
