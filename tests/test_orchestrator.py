"""
Tests for request building: batching, sampling and quiz payload validation.
"""

import pytest

from lumina.errors import EmptyDeckError, MalformedGenerationError
from lumina.models import McqQuestion, QuizConfig, SubjectiveQuestion
from lumina.services.orchestrator import AnalysisOrchestrator, batch_slides, parse_quiz_payload, sample_indices
from lumina.services.prompt_builder import BATCH_SEPARATOR, STUDY_GUIDE_HEADER
from lumina.state import SlideStore

from conftest import FakeAnalysisService, make_new_slides, mcq_payload, subjective_payload


def deck(count):
    store = SlideStore()
    return store.append(make_new_slides(count))


class TestSampleIndices:
    def test_large_deck_is_spread(self):
        assert sample_indices(23, 10) == [0, 3, 6, 9, 12, 15, 18, 21]

    def test_small_deck_uses_every_slide(self):
        assert sample_indices(5, 10) == [0, 1, 2, 3, 4]

    def test_exact_target(self):
        assert sample_indices(10, 10) == list(range(10))

    def test_never_exceeds_target(self):
        for total in range(1, 300):
            picked = sample_indices(total, 10)
            assert 1 <= len(picked) <= 10
            assert picked[0] == 0
            assert all(i < total for i in picked)

    def test_empty_deck_rejected(self):
        with pytest.raises(ValueError):
            sample_indices(0, 10)


class TestBatchSlides:
    def test_fixed_size_batches_keep_order(self):
        slides = deck(10)
        batches = batch_slides(slides, 4)

        assert [len(b) for b in batches] == [4, 4, 2]
        assert [s.id for b in batches for s in b] == [s.id for s in slides]

    def test_empty(self):
        assert batch_slides([], 4) == []


class TestSingleSlideRequests:
    @pytest.mark.asyncio
    async def test_explain_sends_one_image(self):
        service = FakeAnalysisService(lambda r: "explained")
        orchestrator = AnalysisOrchestrator(service)
        slide = deck(1)[0]

        text = await orchestrator.explain_slide(slide, "deep")

        assert text == "explained"
        request = service.requests[0]
        assert request.tier == "deep"
        assert len(request.images) == 1
        assert request.images[0].image == slide.image
        assert request.output_schema is None

    @pytest.mark.asyncio
    async def test_blank_chat_question_uses_default_prompt(self):
        service = FakeAnalysisService(lambda r: "ok")
        orchestrator = AnalysisOrchestrator(service)

        await orchestrator.ask(deck(1)[0], "   ", "fast")

        assert "Analyze this slide" in service.requests[0].instruction

    @pytest.mark.asyncio
    async def test_empty_answer_falls_back(self):
        service = FakeAnalysisService(lambda r: "")
        orchestrator = AnalysisOrchestrator(service)

        assert await orchestrator.summarize_slide(deck(1)[0], "fast") == "Unable to extract takeaways."


class TestDeckSummary:
    @pytest.mark.asyncio
    async def test_batches_are_sequential_and_concatenated(self):
        service = FakeAnalysisService(lambda r: f"batch of {len(r.images)}")
        orchestrator = AnalysisOrchestrator(service, batch_size=4)

        document = await orchestrator.summarize_deck(deck(10), "fast")

        assert len(service.requests) == 3
        assert service.max_in_flight == 1
        assert document == (
            STUDY_GUIDE_HEADER
            + "batch of 4" + BATCH_SEPARATOR
            + "batch of 4" + BATCH_SEPARATOR
            + "batch of 2" + BATCH_SEPARATOR
        )

    @pytest.mark.asyncio
    async def test_labels_use_deck_positions(self):
        service = FakeAnalysisService(lambda r: "x")
        orchestrator = AnalysisOrchestrator(service, batch_size=4)

        await orchestrator.summarize_deck(deck(6), "fast")

        assert [i.label for i in service.requests[1].images] == ["[SLIDE 5]", "[SLIDE 6]"]

    @pytest.mark.asyncio
    async def test_empty_deck_rejected(self):
        orchestrator = AnalysisOrchestrator(FakeAnalysisService())

        with pytest.raises(EmptyDeckError):
            await orchestrator.summarize_deck([], "fast")


class TestSampledRequests:
    @pytest.mark.asyncio
    async def test_quiz_request_samples_deck(self):
        service = FakeAnalysisService(lambda r: mcq_payload())
        orchestrator = AnalysisOrchestrator(service, sample_size=10)

        questions = await orchestrator.generate_quiz(deck(23), QuizConfig(type="mcq", difficulty="hard"), "fast")

        request = service.requests[0]
        assert [i.label for i in request.images] == [f"[SLIDE {n + 1}]" for n in (0, 3, 6, 9, 12, 15, 18, 21)]
        assert request.output_schema is not None
        assert "HARD" in request.instruction
        assert all(isinstance(q, McqQuestion) for q in questions)

    @pytest.mark.asyncio
    async def test_question_bank_samples_deck(self):
        service = FakeAnalysisService(lambda r: "## bank")
        orchestrator = AnalysisOrchestrator(service, sample_size=10)

        text = await orchestrator.generate_question_bank(deck(5), "deep")

        assert text == "## bank"
        assert len(service.requests[0].images) == 5

    @pytest.mark.asyncio
    async def test_empty_deck_rejected_before_request(self):
        service = FakeAnalysisService()
        orchestrator = AnalysisOrchestrator(service)

        with pytest.raises(EmptyDeckError):
            await orchestrator.generate_question_bank([], "fast")
        assert service.requests == []


class TestParseQuizPayload:
    def test_subjective_payload(self):
        questions = parse_quiz_payload(subjective_payload(2), QuizConfig(type="subjective"))

        assert all(isinstance(q, SubjectiveQuestion) for q in questions)
        assert questions[0].model_answer == "Model answer 1"

    def test_bare_list_accepted(self):
        questions = parse_quiz_payload(mcq_payload(2)["questions"], QuizConfig())

        assert len(questions) == 2

    @pytest.mark.parametrize("payload", [None, {}, {"questions": []}, "text"])
    def test_empty_payload_is_malformed(self, payload):
        with pytest.raises(MalformedGenerationError):
            parse_quiz_payload(payload, QuizConfig())

    def test_missing_field_is_malformed(self):
        payload = mcq_payload(1)
        del payload["questions"][0]["options"]

        with pytest.raises(MalformedGenerationError):
            parse_quiz_payload(payload, QuizConfig())

    def test_answer_index_out_of_range_is_malformed(self):
        payload = mcq_payload(1)
        payload["questions"][0]["correctAnswer"] = 4

        with pytest.raises(MalformedGenerationError):
            parse_quiz_payload(payload, QuizConfig())

    def test_single_option_is_malformed(self):
        payload = mcq_payload(1)
        payload["questions"][0]["options"] = ["only"]
        payload["questions"][0]["correctAnswer"] = 0

        with pytest.raises(MalformedGenerationError):
            parse_quiz_payload(payload, QuizConfig())

    def test_wrong_variant_is_malformed(self):
        with pytest.raises(MalformedGenerationError):
            parse_quiz_payload(subjective_payload(1), QuizConfig(type="mcq"))
