from ai.prompts.battle import (
    BATTLE_TURN_STRICT,
    BATTLE_TURN_SYSTEM,
    BATTLE_TURN_USER,
    BATTLE_VERDICT_SYSTEM,
    BATTLE_VERDICT_USER,
)
from ai.prompts.digest import DIGEST_SYSTEM, DIGEST_USER
from ai.prompts.reply import REPLY_SYSTEM, REPLY_USER, THREAD_SUMMARY_SYSTEM, THREAD_SUMMARY_USER

__all__ = [
    "BATTLE_TURN_STRICT",
    "BATTLE_TURN_SYSTEM",
    "BATTLE_TURN_USER",
    "BATTLE_VERDICT_SYSTEM",
    "BATTLE_VERDICT_USER",
    "DIGEST_SYSTEM",
    "DIGEST_USER",
    "REPLY_SYSTEM",
    "REPLY_USER",
    "THREAD_SUMMARY_SYSTEM",
    "THREAD_SUMMARY_USER",
]
