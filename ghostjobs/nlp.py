"""
NLP collaborator contract.

The core hands a plain-text job description (at most 20,000 characters) and a
little metadata to an `NlpAnalyzer` and reads back skills, buzzwords and the
detected compensation period. `KeywordAnalyzer` is a local, dictionary-based
implementation so the pipeline runs without an LLM.
"""

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from bs4 import BeautifulSoup

MAX_NLP_CHARS = 20_000


@dataclass
class NlpAnalysis:
    skills: List[str] = field(default_factory=list)
    buzzword_hits: List[str] = field(default_factory=list)
    buzzword_count: int = 0
    comp_period_detected: Optional[str] = None  # hour or year


def html_to_text(content: Optional[str]) -> str:
    """Visible text of an HTML fragment with whitespace collapsed."""
    if not content:
        return ""
    soup = BeautifulSoup(content, "html.parser")
    for tag in soup(["script", "style"]):
        tag.decompose()
    return " ".join(soup.get_text(separator=" ").split())


def prepare_text(content: Optional[str], max_chars: int = MAX_NLP_CHARS) -> str:
    return html_to_text(content)[:max_chars]


class NlpAnalyzer(ABC):
    @abstractmethod
    def analyze(self, text: str, metadata: Dict[str, Any]) -> NlpAnalysis:
        pass


SKILL_TERMS = [
    "python", "java", "javascript", "typescript", "go", "rust", "c++", "c#", "ruby", "scala",
    "kotlin", "swift", "sql", "postgresql", "mysql", "mongodb", "redis", "kafka", "spark",
    "airflow", "dbt", "snowflake", "aws", "gcp", "azure", "docker", "kubernetes", "terraform",
    "react", "vue", "angular", "node.js", "django", "flask", "fastapi", "graphql", "rest",
    "machine learning", "pytorch", "tensorflow", "pandas", "tableau", "excel", "git", "linux",
    "ci/cd", "figma", "salesforce", "jira",
]

BUZZWORDS = [
    "rockstar", "ninja", "guru", "wizard", "fast-paced", "self-starter", "synergy",
    "work hard play hard", "wear many hats", "go-getter", "thought leader", "disruptive",
    "game changer", "hit the ground running", "family", "unicorn", "hustle", "10x",
]

_HOURLY = re.compile(r"(per hour|/\s?hr\b|/\s?hour\b|hourly)", re.IGNORECASE)
_YEARLY = re.compile(r"(per year|per annum|/\s?yr\b|/\s?year\b|annual(ly)?|salary of)", re.IGNORECASE)


def _contains_term(text: str, term: str) -> bool:
    pattern = r"(?<![\w+#])" + re.escape(term) + r"(?![\w+#])"
    return re.search(pattern, text) is not None


class KeywordAnalyzer(NlpAnalyzer):
    """Dictionary lookup for skills and buzzwords, regexes for pay period."""

    def __init__(self, skills: Optional[List[str]] = None, buzzwords: Optional[List[str]] = None):
        self.skills = skills or SKILL_TERMS
        self.buzzwords = buzzwords or BUZZWORDS

    def analyze(self, text: str, metadata: Dict[str, Any]) -> NlpAnalysis:
        lowered = text.lower()
        skills = [s for s in self.skills if _contains_term(lowered, s)]
        hits = [b for b in self.buzzwords if _contains_term(lowered, b)]

        period = None
        if _HOURLY.search(text):
            period = "hour"
        elif _YEARLY.search(text):
            period = "year"
        return NlpAnalysis(skills=skills, buzzword_hits=hits, buzzword_count=len(hits), comp_period_detected=period)
