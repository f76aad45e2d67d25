"""
SQLAlchemy ORM models for the subject question bank.

The bank is owned by the content-management side of the platform; this
service only reads it when building variants.
"""
from enum import Enum as PyEnum

from sqlalchemy import Column, Integer, String, Text, Boolean, Float, ForeignKey, Enum
from sqlalchemy.orm import relationship

from ..database import Base


class QuestionType(str, PyEnum):
    """Question kinds the variant builder knows how to print and grade."""
    MULTIPLE_CHOICE = "multiple_choice"
    TRUE_FALSE = "true_false"
    ESSAY = "essay"


class Subject(Base):
    __tablename__ = "subjects"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)

    questions = relationship(
        "Question",
        back_populates="subject",
        cascade="all, delete-orphan",
        order_by="Question.order",
    )

    def __repr__(self):
        return f"<Subject(id={self.id}, name={self.name})>"


class Question(Base):
    __tablename__ = "questions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    subject_id = Column(Integer, ForeignKey("subjects.id", ondelete="CASCADE"), nullable=False, index=True)
    text = Column(Text, nullable=False)
    type = Column(
        Enum(QuestionType, values_callable=lambda e: [m.value for m in e], name="question_type"),
        nullable=False,
        default=QuestionType.MULTIPLE_CHOICE,
    )
    points = Column(Float, nullable=False, default=1)
    order = Column(Integer, nullable=False, default=0)

    subject = relationship("Subject", back_populates="questions")
    options = relationship(
        "AnswerOption",
        back_populates="question",
        cascade="all, delete-orphan",
        order_by="AnswerOption.order",
    )

    def __repr__(self):
        return f"<Question(id={self.id}, type={self.type}, subject_id={self.subject_id})>"


class AnswerOption(Base):
    __tablename__ = "answer_options"

    id = Column(Integer, primary_key=True, autoincrement=True)
    question_id = Column(Integer, ForeignKey("questions.id", ondelete="CASCADE"), nullable=False, index=True)
    text = Column(Text, nullable=False)
    is_correct = Column(Boolean, nullable=False, default=False)
    order = Column(Integer, nullable=False, default=0)

    question = relationship("Question", back_populates="options")

    def __repr__(self):
        return f"<AnswerOption(id={self.id}, is_correct={self.is_correct})>"
