"""Reply and thread-summary prompts."""

REPLY_SYSTEM = "You create one short, constructive social reply for a persona."

REPLY_USER = """Persona: {name}
Bio: {bio}
Tone: {tone}
Post: {post}
Thread:
- {thread}
Generate one reply in <=90 words. No links, no hashtags."""

THREAD_SUMMARY_SYSTEM = "You summarize threads in a few bullet-like sentences with neutral tone."

THREAD_SUMMARY_USER = """Post: {post}
Replies:
- {replies}
Provide a compact summary in <=120 words."""
