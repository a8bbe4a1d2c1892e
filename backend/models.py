from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, Boolean, Float
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from db import Base

class Survey(Base):
    __tablename__ = "surveys"
    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    intro_enabled = Column(Boolean, nullable=False, default=False)
    intro_content = Column(Text, nullable=True)
    scoring_method = Column(String(50), nullable=False, default="sum")
    status = Column(String(20), nullable=False, default="draft", index=True)
    colors_config = Column(Text, nullable=True)   # JSON object
    button_config = Column(Text, nullable=True)   # JSON object
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
    questions = relationship("Question", back_populates="survey", order_by="Question.sort_order",
                             cascade="all, delete-orphan", passive_deletes=True)
    submissions = relationship("Submission", back_populates="survey",
                               cascade="all, delete-orphan", passive_deletes=True)

class Question(Base):
    __tablename__ = "questions"
    id = Column(Integer, primary_key=True, index=True)
    survey_id = Column(Integer, ForeignKey("surveys.id", ondelete="CASCADE"), index=True, nullable=False)
    question_text = Column(Text, nullable=False)
    question_type = Column(String(50), nullable=False, default="rating")
    sort_order = Column(Integer, nullable=False, default=0, index=True)
    min_score = Column(Integer, nullable=False, default=0)
    max_score = Column(Integer, nullable=False, default=10)
    required = Column(Boolean, nullable=False, default=True)
    options_config = Column(Text, nullable=True)  # JSON list of {label, value}
    survey = relationship("Survey", back_populates="questions")
    responses = relationship("Response", back_populates="question",
                             cascade="all, delete-orphan", passive_deletes=True)

    @property
    def options(self):
        return self.options_config

class Submission(Base):
    __tablename__ = "submissions"
    id = Column(Integer, primary_key=True, index=True)
    survey_id = Column(Integer, ForeignKey("surveys.id", ondelete="CASCADE"), index=True, nullable=False)
    user_name = Column(String(255), nullable=False)
    user_email = Column(String(255), nullable=False, index=True)
    total_score = Column(Float, nullable=False, default=0.0)
    submission_data = Column(Text, nullable=True)  # raw answer map, JSON
    submitted_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)
    ip_address = Column(String(45), nullable=True)
    survey = relationship("Survey", back_populates="submissions")
    responses = relationship("Response", back_populates="submission",
                             cascade="all, delete-orphan", passive_deletes=True)

class Response(Base):
    __tablename__ = "responses"
    id = Column(Integer, primary_key=True, index=True)
    submission_id = Column(Integer, ForeignKey("submissions.id", ondelete="CASCADE"), index=True, nullable=False)
    question_id = Column(Integer, ForeignKey("questions.id", ondelete="CASCADE"), index=True, nullable=False)
    response_value = Column(Text, nullable=True)
    score_value = Column(Float, nullable=False, default=0.0)
    submission = relationship("Submission", back_populates="responses")
    question = relationship("Question", back_populates="responses")
