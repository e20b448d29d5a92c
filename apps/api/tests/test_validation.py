import pytest

from lecture_copilot.services.llm.prompts import flashcards_instruction, quiz_instruction
from lecture_copilot.services.records import Flashcard, QuizItem, StudyBundle
from lecture_copilot.services.validation import ContentKind, Reason, bundle_violations, validate

GOOD_SUMMARY = (
    "The lecture derives gradient descent from the first-order Taylor expansion and "
    "shows how the learning rate trades convergence speed against stability."
)


def test_accepts_well_formed_summary():
    v = validate(GOOD_SUMMARY, ContentKind.SUMMARY)
    assert v.ok is True
    assert v.reason is None


@pytest.mark.parametrize(
    "text",
    [
        "In this lecture we cover [TOPIC] and why it matters for every student in the course.",
        "The main idea is {{ concept }}, which the instructor explains with several worked cases.",
        "Students should review <ANSWER> before the exam because it comes up repeatedly here.",
        "The lecture explains [topic] in depth and relates it to earlier material in the course.",
    ],
)
def test_rejects_bracket_placeholders(text):
    v = validate(text, ContentKind.SUMMARY)
    assert v.ok is False
    assert v.reason is Reason.BRACKET_PLACEHOLDER


@pytest.mark.parametrize(
    "text",
    [
        "Lorem ipsum dolor sit amet, consectetur adipiscing elit, sed do eiusmod tempor.",
        "Insert topic here and describe the key ideas that the lecture introduces to students.",
        "Due to API limitations this summary could not be generated from the lecture video.",
        "This is a fallback summary produced while the generation service was unavailable.",
        "This sample content stands in for the real summary of the lecture on optimisation.",
    ],
)
def test_rejects_boilerplate(text):
    v = validate(text, ContentKind.SUMMARY)
    assert v.ok is False
    assert v.reason is Reason.BOILERPLATE


def test_rejects_empty_and_short_text():
    assert validate("   ", ContentKind.SUMMARY).reason is Reason.EMPTY
    assert validate("Too short to teach anything.", ContentKind.SUMMARY).reason is Reason.TOO_SHORT
    assert validate("ab", ContentKind.TOPIC).reason is Reason.TOO_SHORT


def test_whole_text_generic_labels_are_rejected_but_phrases_are_not():
    assert validate("Key concept 3", ContentKind.TOPIC).reason is Reason.BOILERPLATE
    assert validate("Sample", ContentKind.TOPIC).reason is Reason.BOILERPLATE
    assert validate("Sample complexity bounds", ContentKind.TOPIC).ok is True


def test_topic_too_long():
    v = validate("gradient " * 12, ContentKind.TOPIC)
    assert v.reason is Reason.TOO_LONG


def test_rejects_instruction_echo():
    instruction = "Write a neutral summary of this lecture in 120-180 words. Return plain prose only."
    v = validate(instruction, ContentKind.SUMMARY, instruction=instruction)
    assert v.reason is Reason.PROMPT_ECHO

    v = validate(GOOD_SUMMARY, ContentKind.SUMMARY, instruction=instruction)
    assert v.ok is True


def test_topic_label_in_back_or_choice_is_not_an_echo():
    topic = "Stochastic gradient descent"

    card = {"front": "Which optimizer updates weights from one mini-batch at a time?", "back": topic}
    assert validate(card, ContentKind.FLASHCARD, instruction=flashcards_instruction(topic, 4)).ok is True

    item = {
        "question": "Which optimizer updates weights from one mini-batch at a time?",
        "choices": [topic, "Newton's method", "Closed-form least squares"],
        "correct_index": 0,
    }
    assert validate(item, ContentKind.QUIZ_ITEM, instruction=quiz_instruction(topic, 4)).ok is True

    # whole artifacts copied from the instruction are still echoes
    echo = {**item, "question": topic}
    assert validate(echo, ContentKind.QUIZ_ITEM, instruction=quiz_instruction(topic, 4)).reason is Reason.PROMPT_ECHO


def test_non_string_is_malformed_not_an_exception():
    assert validate(None, ContentKind.SUMMARY).reason is Reason.MALFORMED
    assert validate(42, ContentKind.TOPIC).reason is Reason.MALFORMED


# -----------------------
# Structured kinds
# -----------------------
def test_flashcard_rules():
    good = Flashcard(front="What does the learning rate control?", back="The size of each update step.")
    assert validate(good, ContentKind.FLASHCARD).ok is True

    same = {"front": "What is gradient descent?", "back": "what is  gradient descent?"}
    assert validate(same, ContentKind.FLASHCARD).reason is Reason.DUPLICATE_SIDES

    blank_back = {"front": "What is gradient descent?", "back": "  "}
    assert validate(blank_back, ContentKind.FLASHCARD).reason is Reason.EMPTY

    assert validate({"front": "only a front here"}, ContentKind.FLASHCARD).reason is Reason.MALFORMED


def test_quiz_item_rules():
    good = QuizItem(
        question="Which quantity sets the step size?",
        choices=("Learning rate", "Batch size", "Epoch count"),
        correct_index=0,
    )
    assert validate(good, ContentKind.QUIZ_ITEM).ok is True

    base = {"question": "Which quantity sets the step size?"}

    one_choice = {**base, "choices": ["Learning rate"], "correct_index": 0}
    assert validate(one_choice, ContentKind.QUIZ_ITEM).reason is Reason.TOO_FEW_CHOICES

    dup = {**base, "choices": ["Learning rate", "learning rate"], "correct_index": 0}
    assert validate(dup, ContentKind.QUIZ_ITEM).reason is Reason.DUPLICATE_CHOICES

    out_of_range = {**base, "choices": ["Learning rate", "Batch size"], "correct_index": 2}
    assert validate(out_of_range, ContentKind.QUIZ_ITEM).reason is Reason.ANSWER_OUT_OF_RANGE

    bool_index = {**base, "choices": ["Learning rate", "Batch size"], "correct_index": True}
    assert validate(bool_index, ContentKind.QUIZ_ITEM).reason is Reason.MALFORMED

    placeholder_choice = {**base, "choices": ["[OPTION A]", "Batch size"], "correct_index": 1}
    assert validate(placeholder_choice, ContentKind.QUIZ_ITEM).reason is Reason.BRACKET_PLACEHOLDER


def test_validate_is_deterministic():
    text = "In this lecture we cover [TOPIC] and why it matters for every student in the course."
    assert validate(text, ContentKind.SUMMARY) == validate(text, ContentKind.SUMMARY)


def test_bundle_violations_lists_every_bad_artifact():
    bundle = StudyBundle(
        video_id="v1",
        summary=GOOD_SUMMARY,
        topics=("Gradient descent",),
        flashcards_by_topic={
            "Gradient descent": (
                Flashcard(front="What does gradient descent minimise?", back="The loss function."),
                Flashcard(front="[QUESTION 1]", back="[ANSWER 1]"),
            )
        },
        quiz_by_topic={"Gradient descent": ()},
    )
    violations = bundle_violations(bundle)
    assert [v.where for v in violations] == ["flashcards:Gradient descent:1"]
    assert violations[0].reason is Reason.BRACKET_PLACEHOLDER
