"""Clinical keyword lexicon loaded from YAML."""

import re
import yaml
from pathlib import Path
from typing import Optional


def _compile(keyword: str) -> re.Pattern:
    """Word-bounded pattern for alphanumeric keywords, plain substring otherwise."""
    escaped = re.escape(keyword.lower())
    if re.match(r"^\w", keyword) and re.search(r"\w$", keyword):
        return re.compile(rf"\b{escaped}\b")
    return re.compile(escaped)


class KeywordGroup:
    """Named group of keywords with an optional weight."""

    def __init__(
        self,
        name: str,
        keywords: list[str],
        weight: float = 0.0,
        clinical: bool = False,
        prefixes: Optional[list[str]] = None,
    ):
        self.name = name
        self.keywords = [str(k) for k in keywords]
        self.weight = float(weight)
        self.clinical = clinical
        self.prefixes = [p.lower() for p in (prefixes or [])]
        self._patterns = [(k, _compile(k)) for k in self.keywords]

    def find(self, text_lower: str) -> list[str]:
        """Return keywords of this group present in already-lowercased text."""
        hits = [k for k, pattern in self._patterns if pattern.search(text_lower)]
        for prefix in self.prefixes:
            if re.match(rf"{re.escape(prefix)}\b", text_lower):
                hits.append(prefix)
        return hits

    def matches(self, text_lower: str) -> bool:
        return bool(self.find(text_lower))


class ClinicalLexicon:
    """
    Keyword lexicon shared by scoring, pin detection and fallback summaries.

    Loaded from ``data/clinical_lexicon.yaml`` unless a path is given, so the
    detection heuristic can be tuned without touching code.
    """

    def __init__(self, lexicon_path: Optional[str] = None):
        """
        Initialize lexicon.

        Args:
            lexicon_path: Path to a lexicon YAML file
        """
        if lexicon_path is None:
            base_path = Path(__file__).parent.parent
            lexicon_path = base_path / "data" / "clinical_lexicon.yaml"

        self.lexicon_path = Path(lexicon_path)
        raw = self._load(self.lexicon_path)

        self.scoring_groups = [
            KeywordGroup(
                name,
                cfg.get("keywords", []),
                weight=cfg.get("weight", 0.0),
                clinical=cfg.get("clinical", False),
                prefixes=cfg.get("prefixes"),
            )
            for name, cfg in (raw.get("scoring") or {}).items()
        ]
        self.acknowledgements = {str(a).lower() for a in raw.get("acknowledgements", [])}
        self.pin_categories = [
            KeywordGroup(name, cfg.get("keywords", []))
            for name, cfg in (raw.get("pin_categories") or {}).items()
        ]
        tiers = raw.get("urgency_tiers") or {}
        self.urgent = KeywordGroup("urgent", tiers.get("urgent", []))
        self.elevated = KeywordGroup("elevated", tiers.get("elevated", []))
        self.urgency_bonus = {
            str(k): float(v) for k, v in (raw.get("urgency_bonus") or {}).items()
        }
        self.topics = [
            KeywordGroup(name, keywords)
            for name, keywords in (raw.get("topics") or {}).items()
        ]

    def _load(self, path: Path) -> dict:
        """Load lexicon from YAML."""
        with open(path, "r") as f:
            return yaml.safe_load(f) or {}

    def is_acknowledgement(self, text: str) -> bool:
        """True for short routine acknowledgements ("ok", "thanks")."""
        normalized = re.sub(r"[\s.!]+$", "", text.lower().strip())
        return normalized in self.acknowledgements

    def topics_for(self, texts: list[str], limit: int = 4) -> list[str]:
        """Topic labels present in the given texts, in lexicon order."""
        joined = " ".join(texts).lower()
        found = [group.name for group in self.topics if group.matches(joined)]
        return found[:limit]
