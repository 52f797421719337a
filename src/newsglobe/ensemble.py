from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field

from .classifier import FakeNewsClassifier
from .llm_adapter import GeminiAdapter
from .models import (
    ClassifierJudgment,
    EnsembleModels,
    EnsembleResult,
    GenerativeJudgment,
    Verdict,
)
from .parsing import parse_credibility_judgment, round_half_up
from .retry import RetryPolicy

logger = logging.getLogger(__name__)

CREDIBLE_THRESHOLD = 75
SUSPICIOUS_THRESHOLD = 45

UI_LABELS: dict[str, str] = {
    "credible": "VERIFIED",
    "suspicious": "SUSPICIOUS",
    "likely_fake": "UNVERIFIED",
}

CREDIBILITY_PROMPT = """You are a fake news detection AI. Analyze the article for credibility. Return JSON with:
- credibilityScore: 0-100
- verdict: "credible", "suspicious", or "likely_fake"
- explanation: 1-2 sentences explaining your assessment
- redFlags: array of strings listing any concerns

Return ONLY valid JSON, no markdown."""


@dataclass
class EnsembleWeights:
    generative: float = 0.6
    classifier: float = 0.4

    def __post_init__(self) -> None:
        if self.generative < 0 or self.classifier < 0:
            raise ValueError("EnsembleWeights must be non-negative")
        if self.generative + self.classifier <= 0:
            raise ValueError("EnsembleWeights sum must be positive")


def classify_score(score: float) -> Verdict:
    """Map a 0-100 credibility score to a verdict (strict ``>`` boundaries)."""
    if score > CREDIBLE_THRESHOLD:
        return "credible"
    if score > SUSPICIOUS_THRESHOLD:
        return "suspicious"
    return "likely_fake"


def ui_label(score: float) -> str:
    return UI_LABELS[classify_score(score)]


def blend_scores(
    generative_score: float,
    classifier_confidence: float,
    weights: EnsembleWeights | None = None,
) -> int:
    weights = weights or EnsembleWeights()
    classifier_percent = round_half_up(classifier_confidence * 100)
    return round_half_up(generative_score * weights.generative + classifier_percent * weights.classifier)


@dataclass
class CredibilityEnsemble:
    llm: GeminiAdapter
    classifier: FakeNewsClassifier
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    weights: EnsembleWeights = field(default_factory=EnsembleWeights)

    async def evaluate(self, title: str, description: str = "", content: str = "") -> EnsembleResult:
        text = content or description or title
        generative, classifier = await asyncio.gather(
            self._generative_judgment(title, text),
            self._classifier_judgment(text),
            return_exceptions=True,
        )
        if isinstance(generative, BaseException):
            if not isinstance(generative, Exception):
                raise generative
            logger.warning("Generative credibility judgment failed: %s; using default", generative)
            generative = GenerativeJudgment()
        if isinstance(classifier, BaseException):
            if not isinstance(classifier, Exception):
                raise classifier
            logger.warning("Classifier judgment failed: %s; using default", classifier)
            classifier = ClassifierJudgment()
        return self.combine(generative, classifier)

    def combine(self, generative: GenerativeJudgment, classifier: ClassifierJudgment) -> EnsembleResult:
        score = blend_scores(generative.score, classifier.confidence, self.weights)
        explanation = generative.explanation or (
            f"Ensemble analysis: generative model scored {generative.score}/100, "
            f"classifier confidence {round_half_up(classifier.confidence * 100)}% ({classifier.label})."
        )
        return EnsembleResult(
            credibility_score=score,
            verdict=classify_score(score),
            explanation=explanation,
            red_flags=list(generative.red_flags),
            bert_confidence=classifier.confidence,
            bert_label=classifier.label,
            models=EnsembleModels(generative=generative, classifier=classifier),
        )

    async def _generative_judgment(self, title: str, text: str) -> GenerativeJudgment:
        if not self.llm.configured:
            logger.info("Generative model not configured; using default credibility judgment")
            return GenerativeJudgment()
        user_prompt = f"Check credibility:\nTitle: {title}\nContent: {text}"

        async def _ask() -> GenerativeJudgment:
            raw = await self.llm.generate(CREDIBILITY_PROMPT, user_prompt)
            return parse_credibility_judgment(raw)

        return await self.retry.run(_ask, label="credibility judgment")

    async def _classifier_judgment(self, text: str) -> ClassifierJudgment:
        if not self.classifier.configured:
            return ClassifierJudgment()
        return await self.classifier.classify(text)
