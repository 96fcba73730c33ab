"""
Persona loader.

Reads the personality definition from YAML and exposes it as an
immutable object used by the decision gateway and the fallback responder.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Tuple

import yaml

DEFAULT_PERSONA_PATH = Path(__file__).resolve().parents[2] / "config" / "persona.yml"

_REQUIRED_KEYS = ("name", "core", "catchphrases", "reactions")


@dataclass(frozen=True)
class Persona:
    name: str
    core: str
    traits: Tuple[str, ...] = ()
    tone: str = "casual"
    pace: str = "fast"
    avoid: Tuple[str, ...] = ()
    rules: Tuple[str, ...] = ()
    catchphrases: Tuple[str, ...] = ()
    opening_line: str = ""
    reactions: Dict[str, object] = field(default_factory=dict)

    def reaction_lines(self, *path: str) -> List[str]:
        """Walk the reactions tree and return a list of templates (possibly empty)."""
        node: object = self.reactions
        for key in path:
            if not isinstance(node, dict):
                return []
            node = node.get(key)
        if isinstance(node, str):
            return [node]
        if isinstance(node, list):
            return [str(item) for item in node if item]
        return []

    def system_prompt(self) -> str:
        traits = "\n".join(f"- {t}" for t in self.traits)
        rules = "\n".join(f"- {r}" for r in self.rules)
        catchphrases = "\n".join(f'- "{c}"' for c in self.catchphrases[:5])
        return (
            f"You are {self.name}, an autonomous AI crypto trading streamer.\n\n"
            f"PERSONALITY:\n{self.core}\n\n"
            f"TRAITS:\n{traits}\n\n"
            "SPEAKING STYLE:\n"
            f"- Tone: {self.tone}\n"
            f"- Pace: {self.pace}\n"
            f"- AVOID: {', '.join(self.avoid)}\n\n"
            f"CATCHPHRASES (use sparingly):\n{catchphrases}\n\n"
            f"RULES:\n{rules}\n\n"
            "You're live streaming and commentating on crypto. Keep responses SHORT "
            "and punchy (1-3 sentences max). React naturally to what's happening.\n\n"
            "Respond in JSON format:\n"
            '{"text": "Your spoken response", '
            '"emotion": "neutral|bullish|bearish|laughing|skeptical|shocked", '
            '"action": "none|buy_signal|sell_signal|rug_warning", '
            '"confidence": 0.0-1.0}'
        )


def load_persona(path: Path = DEFAULT_PERSONA_PATH) -> Persona:
    """Load persona YAML. Fails fast when the file or required keys are missing."""
    if not path.exists():
        raise FileNotFoundError(f"Persona config not found: {path}")

    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}

    missing = [key for key in _REQUIRED_KEYS if not data.get(key)]
    if missing:
        raise ValueError(f"Persona config missing keys: {', '.join(missing)}")

    style = data.get("speaking_style") or {}
    return Persona(
        name=str(data["name"]),
        core=str(data["core"]).strip(),
        traits=tuple(data.get("traits") or ()),
        tone=str(style.get("tone", "casual")),
        pace=str(style.get("pace", "fast")),
        avoid=tuple(style.get("avoid") or ()),
        rules=tuple(data.get("rules") or ()),
        catchphrases=tuple(data["catchphrases"]),
        opening_line=str(data.get("opening_line") or "").strip(),
        reactions=dict(data["reactions"]),
    )
