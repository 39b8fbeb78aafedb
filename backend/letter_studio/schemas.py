from typing import List, Optional, Literal
from pydantic import BaseModel, Field, ConfigDict
from datetime import datetime

DEFAULT_CLOSING = "Sincerely,"

# --- Letter content ---

class LetterHeader(BaseModel):
    fullName: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    location: Optional[str] = None
    date: Optional[str] = None

class LetterRecipient(BaseModel):
    name: Optional[str] = None
    company: Optional[str] = None
    position: Optional[str] = None
    address: Optional[str] = None

class LetterContent(BaseModel):
    """Structured cover letter: header, recipient block, free-form body and closing."""
    header: LetterHeader = Field(default_factory=LetterHeader)
    recipient: LetterRecipient = Field(default_factory=LetterRecipient)
    body: str = ""
    closing: Optional[str] = DEFAULT_CLOSING

    @property
    def closing_or_default(self) -> str:
        return (self.closing or "").strip() or DEFAULT_CLOSING

class UserProfile(BaseModel):
    """Read-only substitution source for placeholder resolution."""
    model_config = ConfigDict(frozen=True)

    name: Optional[str] = None
    email: Optional[str] = None
    location: Optional[str] = None

    @classmethod
    def from_user(cls, user) -> "UserProfile":
        return cls(name=user.name, email=user.email, location=user.location)

# --- Persistence payloads ---

class CoverLetterCreate(BaseModel):
    name: str = Field(..., min_length=1)
    jobTitle: Optional[str] = None
    template: str = "standard"
    content: LetterContent = Field(default_factory=LetterContent)

class CoverLetterUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1)
    jobTitle: Optional[str] = None
    template: Optional[str] = None
    content: Optional[LetterContent] = None

class CoverLetterOut(BaseModel):
    id: int
    name: str
    jobTitle: Optional[str] = None
    template: str
    content: LetterContent
    createdAt: Optional[datetime] = None
    updatedAt: Optional[datetime] = None

    @classmethod
    def from_record(cls, record) -> "CoverLetterOut":
        return cls(
            id=record.id,
            name=record.name,
            jobTitle=record.job_title,
            template=record.template,
            content=LetterContent.model_validate(record.content or {}),
            createdAt=record.created_at,
            updatedAt=record.updated_at,
        )

# --- AI authoring ---

class GenerateRequest(BaseModel):
    jobTitle: Optional[str] = None
    companyName: Optional[str] = None
    jobDescription: Optional[str] = None
    type: Literal["complete", "suggestions"] = "complete"

class GenerateResponse(BaseModel):
    content: str
    suggestions: Optional[str] = None

class AnalyzeRequest(BaseModel):
    coverLetter: Optional[str] = None
    jobDescription: Optional[str] = None

class CoverLetterAnalysis(BaseModel):
    """Scores and feedback for a cover letter measured against a job description."""
    overallScore: int = Field(..., ge=0, le=100, description="Overall quality score from 0 to 100")
    alignment: int = Field(..., ge=0, le=100, description="How well the letter matches the job requirements")
    persuasiveness: int = Field(..., ge=0, le=100, description="How convincing the letter is")
    clarity: int = Field(..., ge=0, le=100, description="How clear and well structured the writing is")
    strengths: List[str] = Field(default_factory=list)
    weaknesses: List[str] = Field(default_factory=list)
    improvementSuggestions: List[str] = Field(default_factory=list)
    optimizedCoverLetter: str = Field(..., description="A rewritten, improved version of the letter body")

class CleanRequest(BaseModel):
    text: str = ""

class CleanResponse(BaseModel):
    cleanedLetterBody: str

# --- Export ---

class PDFGenerationRequest(BaseModel):
    name: str = "Cover Letter"
    content: LetterContent = Field(default_factory=LetterContent)

# --- Users ---

class UserOut(BaseModel):
    id: str
    name: Optional[str] = None
    email: Optional[str] = None
    location: Optional[str] = None
    phone: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)

class UserUpdate(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    location: Optional[str] = None
    phone: Optional[str] = None
