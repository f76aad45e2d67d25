# Models package
from .question_bank import Subject, Question, AnswerOption, QuestionType
from .generated_test import GeneratedTest, GeneratedTestVariant
from .results import ScannedGrade, Result

__all__ = [
    # Question bank models
    "Subject",
    "Question",
    "AnswerOption",
    "QuestionType",
    # Generation models
    "GeneratedTest",
    "GeneratedTestVariant",
    # Grading models
    "ScannedGrade",
    "Result",
]
