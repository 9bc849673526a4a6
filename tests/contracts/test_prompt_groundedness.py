from grounded_qa.obs.tracing import GroundednessEvaluator
from grounded_qa.prompting.assembler import DEFAULT_PERSONA


def test_persona_contains_grounding_constraints() -> None:
    assert "Answer only from the context" in DEFAULT_PERSONA
    assert "not available in the provided document" in DEFAULT_PERSONA
    assert "calculator" in DEFAULT_PERSONA


def test_groundedness_evaluator_high_for_supported_answer() -> None:
    evaluator = GroundednessEvaluator(min_overlap=0.3)
    answer = "Survey records make no mention of Xylar having any moons [xylar-chunk-0003]."
    sources = ["Survey records make no mention of Xylar having any moons"]

    assert evaluator.score(answer, sources) >= 0.95


def test_groundedness_evaluator_penalizes_unsupported_answer() -> None:
    evaluator = GroundednessEvaluator()
    sources = ["Xylar has a thin atmosphere made mostly of neon"]

    assert evaluator.score("Yes, Xylar has three large moons orbiting it.", sources) < 0.5


def test_disclosure_of_missing_information_counts_as_grounded() -> None:
    evaluator = GroundednessEvaluator()

    answer = "The provided document does not contain information to answer that question."
    assert evaluator.score(answer, []) == 1.0
