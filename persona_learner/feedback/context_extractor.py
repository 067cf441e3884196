# persona_learner/feedback/context_extractor.py

import re
from typing import Any, Dict


# Emoticons, misc symbols, transport/map symbols, dingbats
_EMOJI_RE = re.compile("[\U0001F600-\U0001F64F\U0001F300-\U0001F5FF\U0001F680-\U0001F6FF\u2600-\u26FF\u2700-\u27BF]")

_HUMOR_MARKERS = ["\U0001F604", "\U0001F60A", "\U0001F602", "!", "ㅋㅋ", "ㅎㅎ", "funny", "joke"]
_EXAMPLE_MARKERS = ["예를 들어", "예시", "for example", "e.g.", "such as", "예:"]
_STRUCTURE_MARKERS = ["\n-", "\n*", "\n1.", "\n2.", "##", "###"]


class MessageContextExtractor:
    """
    Assistant message text -> context features (heuristic).

    The output keys are the ones HeuristicTraitPolicy understands.
    """

    def analyze(self, content: str) -> Dict[str, Any]:
        lowered = content.lower()
        return {
            "message_length": len(content),
            "had_code_snippets": "`" in content,
            "had_emojis": bool(_EMOJI_RE.search(content)),
            "had_humor": any(m in lowered for m in _HUMOR_MARKERS),
            "had_examples": any(m in lowered for m in _EXAMPLE_MARKERS),
            "was_structured": any(m in content for m in _STRUCTURE_MARKERS),
        }
